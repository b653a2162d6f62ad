import atexit
import logging
import sys

from elmahio_logging.handler import ElmahIoHandler, async_handler

from .formatting import LOG_FORMAT, TIME_FORMAT, Formatter, JSONFormatter

logger = logging.getLogger(__name__)

INTERNAL_LOGGER_NAME = "elmahio_logging"


def init_app(app):
    """
    Sends everything ``app.logger`` logs at ``ELMAHIO_LOG_LEVEL`` and above to elmah.io.

    Returns the ``ElmahIoHandler``, or None when no api key or log id is configured.
    """
    app.config.setdefault("ELMAHIO_API_KEY", None)
    app.config.setdefault("ELMAHIO_LOG_ID", None)
    app.config.setdefault("ELMAHIO_APPLICATION", app.name)
    app.config.setdefault("ELMAHIO_LOG_LEVEL", "WARNING")
    app.config.setdefault("ELMAHIO_API_URL", None)
    app.config.setdefault("ELMAHIO_PROXIES", None)
    app.config.setdefault("ELMAHIO_BATCH_SIZE", ElmahIoHandler.BATCH_SIZE)
    app.config.setdefault("ELMAHIO_TASK_DELAY", ElmahIoHandler.TASK_DELAY)
    app.config.setdefault("ELMAHIO_ASYNC", True)
    app.config.setdefault("ELMAHIO_INTERNAL_LOG_LEVEL", "WARNING")
    app.config.setdefault("ELMAHIO_INTERNAL_LOG_JSON", True)

    configure_internal_logging(
        app.config["ELMAHIO_INTERNAL_LOG_LEVEL"],
        json=app.config["ELMAHIO_INTERNAL_LOG_JSON"],
    )

    if not app.config["ELMAHIO_API_KEY"] or not app.config["ELMAHIO_LOG_ID"]:
        logger.warning("ELMAHIO_API_KEY and ELMAHIO_LOG_ID must both be set to send logs to elmah.io")
        return None

    handler = ElmahIoHandler(
        app.config["ELMAHIO_API_KEY"],
        app.config["ELMAHIO_LOG_ID"],
        application=app.config["ELMAHIO_APPLICATION"],
        api_url=app.config["ELMAHIO_API_URL"],
        proxies=app.config["ELMAHIO_PROXIES"],
        batch_size=app.config["ELMAHIO_BATCH_SIZE"],
        task_delay=app.config["ELMAHIO_TASK_DELAY"],
    )
    loglevel = logging.getLevelName(app.config["ELMAHIO_LOG_LEVEL"])
    handler.setLevel(loglevel)

    if app.config["ELMAHIO_ASYNC"]:
        queue_handler, listener = async_handler(handler)
        queue_handler.setLevel(loglevel)
        atexit.register(listener.stop)
        app.logger.addHandler(queue_handler)
    else:
        app.logger.addHandler(handler)

    if app.logger.getEffectiveLevel() > handler.level:
        app.logger.setLevel(loglevel)

    app.extensions["elmahio"] = handler

    logger.info("Logging to elmah.io log %s configured", handler.log_id)

    return handler


def configure_internal_logging(level="WARNING", json=True, stream=None):
    """
    Our own diagnostics - failed requests to elmah.io and the like - go to their own stream rather than
    back through the application's handlers.
    """
    formatter = JSONFormatter(LOG_FORMAT, TIME_FORMAT) if json else Formatter(LOG_FORMAT, TIME_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)

    internal_logger = logging.getLogger(INTERNAL_LOGGER_NAME)
    internal_logger.handlers.clear()
    internal_logger.addHandler(stream_handler)
    internal_logger.setLevel(logging.getLevelName(level))
    internal_logger.propagate = False

    return stream_handler
