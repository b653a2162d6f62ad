# Keep this file to re-exports only - it's imported before anything else in the package

from elmahio_logging.handler import ElmahIoHandler, ElmahIoQueueHandler, async_handler  # noqa: F401
from elmahio_logging.layouts import CallableLayout, FormatLayout, Layout, PropertyLayout  # noqa: F401
from elmahio_logging.models import CreateMessage, Item, Severity  # noqa: F401
from elmahio_logging.version import __version__  # noqa: F401
