import json
import logging
import re
import traceback
from collections.abc import Iterable, Mapping
from urllib.parse import urlsplit

from elmahio_logging.models import Item, Severity

logger = logging.getLogger(__name__)

# digits only, so not "1_000" or digits from other scripts
STATUS_CODE_PATTERN = re.compile(r"\s*[+-]?[0-9]+\s*")


def _is_blank(value):
    return value is None or not value.strip()


def _stringify(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            # keys json can't encode, or a value that contains itself
            return str(value)
    return str(value)


def severity_for_level(levelno):
    if levelno >= logging.CRITICAL:
        return Severity.FATAL
    if levelno >= logging.ERROR:
        return Severity.ERROR
    if levelno >= logging.WARNING:
        return Severity.WARNING
    if levelno >= logging.INFO:
        return Severity.INFORMATION
    if levelno >= logging.DEBUG:
        return Severity.DEBUG
    return Severity.VERBOSE


def base_exception(exc):
    """
    The innermost exception in the chain leading to ``exc``, following explicit causes (``raise ... from``) and
    the exceptions being handled when each one was raised.
    """
    seen = {id(exc)}
    while True:
        inner = exc.__cause__ or (None if exc.__suppress_context__ else exc.__context__)
        if inner is None or id(inner) in seen:
            return exc
        seen.add(id(inner))
        exc = inner


def full_type_name(exc):
    cls = type(exc)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def raising_module(exc):
    tb = exc.__traceback__
    if tb is None:
        return None
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_globals.get("__name__")


def exception_from_record(record):
    if record.exc_info and record.exc_info[1] is not None:
        return record.exc_info[1]
    return None


def detail(record):
    if record.exc_info and record.exc_info[0] is not None:
        return "".join(traceback.format_exception(*record.exc_info))
    # a formatter may have been here before us and left only the text
    return record.exc_text or None


def url(rendered):
    if _is_blank(rendered):
        return None

    try:
        parts = urlsplit(rendered)
    except ValueError:
        return None

    if parts.scheme and parts.netloc:
        return parts.path or "/"
    return rendered


def status_code(rendered):
    if _is_blank(rendered):
        return None

    if not STATUS_CODE_PATTERN.fullmatch(rendered):
        return None

    return int(rendered)


def type_name(rendered, exc):
    if not _is_blank(rendered):
        return rendered
    if exc is not None:
        return full_type_name(base_exception(exc))
    return None


def source(rendered, record, exc):
    if not _is_blank(rendered):
        return rendered
    if exc is None:
        return record.name
    return raising_module(base_exception(exc))


def _items_from_json(rendered):
    try:
        objects = json.loads(rendered)
    except ValueError:
        logger.warning("Could not decode %r as a JSON list of objects", rendered)
        return None

    return [
        Item(str(key), _stringify(value))
        for obj in objects
        if isinstance(obj, Mapping)
        for key, value in obj.items()
    ]


def _items_from_key_value_text(rendered):
    # the way a dictionary renders as text: "key1"="value1", "key2"="value2"
    items = []
    for key_and_value in rendered.split('", "'):
        if not key_and_value:
            continue

        parts = key_and_value.split('"="')
        key = parts[0].strip('"')
        if _is_blank(key):
            continue

        value = parts[1].strip('"') if len(parts) > 1 else None
        items.append(Item(key, value))

    return items


def _items_from_iterable(values):
    items = []
    for element in values:
        if isinstance(element, Mapping):
            items.extend(Item(str(key), _stringify(value)) for key, value in element.items())
        elif isinstance(element, (list, tuple)) and len(element) == 2:
            key, value = element
            items.append(Item(str(key), _stringify(value)))
    return items


def render_items(value):
    """
    Turns cookies, form fields, query string arguments or headers into a list of ``Item``s. ``value`` is whatever
    the layout resolved to: a mapping, a sequence of pairs or mappings, JSON text holding a list of objects, or
    the quoted key/value text a dictionary renders as.
    """
    if value is None:
        return None

    if isinstance(value, str):
        if _is_blank(value):
            return None
        if value.startswith("[{") and value.endswith("}]"):
            return _items_from_json(value)
        return _items_from_key_value_text(value)

    if isinstance(value, Mapping):
        return [Item(str(key), _stringify(item_value)) for key, item_value in value.items()]

    if not isinstance(value, Iterable):
        return render_items(str(value))

    return _items_from_iterable(value)


def properties_to_data(properties):
    return [Item(str(key), _stringify(value)) for key, value in properties.items() if value is not None]
