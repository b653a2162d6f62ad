"""
Layouts decide where each elmah.io field comes from for a given log record.

Most fields are looked up in the record's event properties - the mapping passed
as the logging argument and anything supplied through ``extra=`` - trying a few
spellings of a well-known name before falling back to the current Flask request
or the machine itself.
"""

import getpass
import logging
import socket
from collections.abc import Mapping

from flask import g, request
from flask.ctx import has_app_context, has_request_context

# set by ElmahIoQueueHandler on records handed over to a listener thread
REQUEST_SNAPSHOT_ATTR = "elmahio_request"

# everything a plain LogRecord carries, so whatever else is on a record was added by the caller
_RESERVED_ATTRS = frozenset(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    REQUEST_SNAPSHOT_ATTR,
}


def event_properties(record):
    properties = {}
    if isinstance(record.args, Mapping):
        properties.update(record.args)
    properties.update((key, value) for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS)
    return properties


def _is_empty(value):
    return value is None or value == ""


class Layout:
    def resolve(self, record):
        """
        Returns the raw value for this record, which need not be a string. Cookies and headers, for instance, may
        resolve to a mapping.
        """
        raise NotImplementedError

    def render(self, record):
        value = self.resolve(record)
        if _is_empty(value):
            return None
        return value if isinstance(value, str) else str(value)


class PropertyLayout(Layout):
    """
    The first of ``property_names`` present and non-empty in the record's event properties, or whatever ``default``
    returns for the record.
    """

    def __init__(self, *property_names, default=None):
        self.property_names = property_names
        self.default = default

    def resolve(self, record):
        properties = event_properties(record)
        for name in self.property_names:
            value = properties.get(name)
            if not _is_empty(value):
                return value

        if self.default is not None:
            return self.default(record)

        return None

    def __repr__(self):
        return f"{self.__class__.__name__}{self.property_names}"


class _EmptyWhenMissing(dict):
    def __missing__(self, key):
        return ""


class FormatLayout(Layout):
    """
    A %-style template such as ``"%(tenant)s/%(name)s"`` rendered against the record's attributes and event
    properties. Names that aren't there render as empty strings.
    """

    def __init__(self, fmt):
        self.fmt = fmt

    def resolve(self, record):
        values = _EmptyWhenMissing(record.__dict__)
        values.pop(REQUEST_SNAPSHOT_ATTR, None)
        values.update(event_properties(record))
        values["message"] = record.getMessage()
        return self.fmt % values

    def __repr__(self):
        return f"{self.__class__.__name__}({self.fmt!r})"


class CallableLayout(Layout):
    def __init__(self, func):
        self.func = func

    def resolve(self, record):
        return self.func(record)


def as_layout(value):
    if value is None or isinstance(value, Layout):
        return value
    if isinstance(value, str):
        return FormatLayout(value)
    if callable(value):
        return CallableLayout(value)
    raise TypeError(f"Cannot use {value!r} as a layout")


def first_of(*lookups):
    def lookup(record):
        for func in lookups:
            value = func(record)
            if not _is_empty(value):
                return value
        return None

    return lookup


def machine_name(record):
    return socket.gethostname()


def environment_user(record):
    try:
        return getpass.getuser()
    except (ImportError, KeyError, OSError):
        # no login name to be found in the environment or password database
        return None


def _without_port(host):
    # "[::1]" has colons but no port
    name, separator, port = host.rpartition(":")
    if separator and port.isdecimal():
        return name
    return host


def capture_request():
    """
    Takes what the request fallbacks need from the current Flask request (and the user from the app context), so a
    record can carry it to a thread that has no request context of its own.
    """
    snapshot = {}

    if has_app_context() and "user_id" in g:
        snapshot["user"] = g.user_id

    if has_request_context():
        snapshot.update(
            {
                "host": _without_port(request.host),
                "method": request.method,
                "url": request.url,
                "cookies": list(request.cookies.items(multi=True)),
                "form": list(request.form.items(multi=True)),
                "query_string": list(request.args.items(multi=True)),
                "headers": list(request.headers.items()),
            }
        )

    return snapshot or None


def _request_lookup(key):
    def lookup(record):
        if REQUEST_SNAPSHOT_ATTR in record.__dict__:
            snapshot = record.__dict__[REQUEST_SNAPSHOT_ATTR]
        else:
            snapshot = capture_request()

        return snapshot.get(key) if snapshot else None

    return lookup


request_host = _request_lookup("host")
request_user = _request_lookup("user")
request_method = _request_lookup("method")
request_url = _request_lookup("url")
request_cookies = _request_lookup("cookies")
request_form = _request_lookup("form")
request_query_string = _request_lookup("query_string")
request_headers = _request_lookup("headers")

HOSTNAME_LAYOUT = PropertyLayout("hostname", "Hostname", "HostName", default=first_of(request_host, machine_name))
COOKIE_LAYOUT = PropertyLayout("cookies", "Cookies", default=request_cookies)
FORM_LAYOUT = PropertyLayout("form", "Form", default=request_form)
QUERY_STRING_LAYOUT = PropertyLayout("querystring", "queryString", "QueryString", default=request_query_string)
HEADERS_LAYOUT = PropertyLayout("servervariables", "serverVariables", "ServerVariables", default=request_headers)
SOURCE_LAYOUT = PropertyLayout("source", "Source", default=lambda record: record.name)
USER_LAYOUT = PropertyLayout("user", "User", default=first_of(request_user, environment_user))
METHOD_LAYOUT = PropertyLayout("method", "Method", default=request_method)
VERSION_LAYOUT = PropertyLayout("version", "Version")
URL_LAYOUT = PropertyLayout("url", "Url", "URL", default=request_url)
TYPE_LAYOUT = PropertyLayout("type", "Type")
# flask has no response yet at the point something is logged, so nothing to fall back on
STATUS_CODE_LAYOUT = PropertyLayout("statuscode", "Statuscode", "statusCode", "StatusCode")


def application_layout(application=None):
    return PropertyLayout("application", "Application", default=lambda record: application)
