import copy
import logging
import logging.handlers
import os
import queue
import threading
import uuid
from datetime import datetime, timezone

from elmahio_logging import fields, layouts
from elmahio_logging.clients.elmahio.elmahio_client import ElmahIoClient
from elmahio_logging.models import CreateMessage

logger = logging.getLogger(__name__)

# records from these would only be produced by sending to elmah.io in the first place
IGNORED_LOGGER_PREFIXES = ("elmahio_logging", "urllib3")


class ElmahIoHandler(logging.handlers.BufferingHandler):
    """
    Sends log records to elmah.io.

    Records are buffered and sent in bulk, once ``batch_size`` records have been collected or ``task_delay`` seconds
    after the first of them arrived, whichever comes first. A batch of one is sent as a single message.

    Every field of the message can be taken from a layout of your own - a ``Layout``, a %-style template string or a
    callable taking the record. The defaults look for well-known event properties (``logger.error("...",
    extra={"url": "/checkout"})``) and fall back to the current Flask request and the machine.

    ``on_message(message)`` is called with each message before it is sent, ``on_error(message, exc)`` when it could
    not be sent and ``on_filter(message)`` can return True to drop a message altogether.

    Can be configured through ``logging.config.dictConfig``::

        "handlers": {
            "elmahio": {
                "class": "elmahio_logging.ElmahIoHandler",
                "level": "WARNING",
                "api_key": "${ELMAHIO_API_KEY}",
                "log_id": "${ELMAHIO_LOG_ID}",
            },
        }
    """

    BATCH_SIZE = 50
    TASK_DELAY = 0.25
    # how long close() waits for each send already under way on another thread
    CLOSE_TIMEOUT = ElmahIoClient.TIMEOUT

    def __init__(
        self,
        api_key,
        log_id,
        *,
        application=None,
        client=None,
        api_url=None,
        proxies=None,
        batch_size=BATCH_SIZE,
        task_delay=TASK_DELAY,
        include_event_properties=True,
        context_properties=None,
        on_message=None,
        on_error=None,
        on_filter=None,
        hostname_layout=None,
        cookie_layout=None,
        form_layout=None,
        query_string_layout=None,
        headers_layout=None,
        source_layout=None,
        application_layout=None,
        user_layout=None,
        method_layout=None,
        version_layout=None,
        url_layout=None,
        type_layout=None,
        status_code_layout=None,
    ):
        super().__init__(batch_size)

        self.api_key = os.path.expandvars(api_key or "")
        if not self.api_key:
            raise ValueError("An elmah.io api key is required")

        # raises ValueError for anything that isn't a log id
        self.log_id = str(uuid.UUID(os.path.expandvars(str(log_id or ""))))

        self.application = application
        self.client = client
        self.api_url = api_url
        self.proxies = proxies
        self.task_delay = task_delay
        self.include_event_properties = include_event_properties
        self.context_properties = {
            name: layouts.as_layout(layout) for name, layout in (context_properties or {}).items()
        }

        self.on_message = on_message
        self.on_error = on_error
        self.on_filter = on_filter

        self.hostname_layout = layouts.as_layout(hostname_layout) or layouts.HOSTNAME_LAYOUT
        self.cookie_layout = layouts.as_layout(cookie_layout) or layouts.COOKIE_LAYOUT
        self.form_layout = layouts.as_layout(form_layout) or layouts.FORM_LAYOUT
        self.query_string_layout = layouts.as_layout(query_string_layout) or layouts.QUERY_STRING_LAYOUT
        self.headers_layout = layouts.as_layout(headers_layout) or layouts.HEADERS_LAYOUT
        self.source_layout = layouts.as_layout(source_layout) or layouts.SOURCE_LAYOUT
        self.application_layout = layouts.as_layout(application_layout) or layouts.application_layout(application)
        self.user_layout = layouts.as_layout(user_layout) or layouts.USER_LAYOUT
        self.method_layout = layouts.as_layout(method_layout) or layouts.METHOD_LAYOUT
        self.version_layout = layouts.as_layout(version_layout) or layouts.VERSION_LAYOUT
        self.url_layout = layouts.as_layout(url_layout) or layouts.URL_LAYOUT
        self.type_layout = layouts.as_layout(type_layout) or layouts.TYPE_LAYOUT
        self.status_code_layout = layouts.as_layout(status_code_layout) or layouts.STATUS_CODE_LAYOUT

        self._timer = None
        self._sends = []
        self._sends_lock = threading.Lock()

    def shouldFlush(self, record):
        return len(self.buffer) >= self.capacity or not self.task_delay

    def emit(self, record):
        # We don't want any endless recursion
        if record.name.startswith(IGNORED_LOGGER_PREFIXES):
            return

        # the batch may be sent from the timer thread or during a later request, so the request fields are taken now
        if layouts.REQUEST_SNAPSHOT_ATTR not in record.__dict__:
            record = copy.copy(record)
            setattr(record, layouts.REQUEST_SNAPSHOT_ATTR, layouts.capture_request())

        super().emit(record)

        if self.buffer and self._timer is None:
            self._timer = threading.Timer(self.task_delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self):
        done = threading.Event()
        sending = (threading.current_thread(), done)

        self.acquire()
        try:
            records, self.buffer = self.buffer, []
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            # registered while the buffer is still locked, so close() can't miss it
            if records:
                with self._sends_lock:
                    self._sends.append(sending)
        finally:
            self.release()

        if not records:
            return

        try:
            self.send(records)
        finally:
            done.set()
            with self._sends_lock:
                self._sends.remove(sending)

    def close(self):
        super().close()

        # timer threads are daemons, so anything they are still sending would be lost at exit
        current = threading.current_thread()
        with self._sends_lock:
            pending = [done for thread, done in self._sends if thread is not current]
        for done in pending:
            done.wait(self.CLOSE_TIMEOUT)

    def send(self, records):
        messages = []
        for record in records:
            try:
                message = self.create_message(record)
                if self.on_filter is not None and self.on_filter(message):
                    continue
            except Exception:
                self.handleError(record)
                continue

            messages.append(message)

        if not messages:
            return

        try:
            client = self.get_client()
            if len(records) == 1:
                client.create_and_notify(self.log_id, messages[0])
            else:
                client.create_bulk_and_notify(self.log_id, messages)
        except Exception:
            self.handleError(records[-1])

    def create_message(self, record):
        exc = fields.exception_from_record(record)
        title = self.format(record) if self.formatter is not None else record.getMessage()

        return CreateMessage(
            title=title,
            title_template=record.msg if isinstance(record.msg, str) else title,
            severity=fields.severity_for_level(record.levelno),
            date_time=datetime.fromtimestamp(record.created, tz=timezone.utc),
            detail=fields.detail(record),
            data=self.properties_to_data(record),
            source=fields.source(self.source_layout.render(record), record, exc),
            hostname=self.hostname_layout.render(record),
            application=self.application_layout.render(record),
            user=self.user_layout.render(record),
            method=self.method_layout.render(record),
            version=self.version_layout.render(record),
            url=fields.url(self.url_layout.render(record)),
            type=fields.type_name(self.type_layout.render(record), exc),
            status_code=fields.status_code(self.status_code_layout.render(record)),
            server_variables=fields.render_items(self.headers_layout.resolve(record)),
            cookies=fields.render_items(self.cookie_layout.resolve(record)),
            form=fields.render_items(self.form_layout.resolve(record)),
            query_string=fields.render_items(self.query_string_layout.resolve(record)),
        )

    def properties_to_data(self, record):
        if not self.include_event_properties and not self.context_properties:
            return None

        properties = layouts.event_properties(record) if self.include_event_properties else {}
        for name, layout in self.context_properties.items():
            properties[name] = layout.resolve(record)

        return fields.properties_to_data(properties)

    def get_client(self):
        if self.client is None:
            client = ElmahIoClient(self.api_key, api_url=self.api_url, proxies=self.proxies)
            client.on_message = self._client_message
            client.on_message_fail = self._client_message_fail
            self.client = client

        return self.client

    def _client_message(self, message):
        if self.on_message is not None:
            self.on_message(message)

    def _client_message_fail(self, message, error):
        logger.error("ElmahIoHandler(name=%s): Error - %s", self.name, message.title, exc_info=error)
        if self.on_error is not None:
            self.on_error(message, error)


class ElmahIoQueueHandler(logging.handlers.QueueHandler):
    """
    Hands records over to a ``QueueListener`` in this same process.

    Unlike the stock ``QueueHandler`` it keeps the record's arguments and exception, and takes a snapshot of the
    current Flask request, so the listener thread can still derive every field.
    """

    def prepare(self, record):
        record = copy.copy(record)
        setattr(record, layouts.REQUEST_SNAPSHOT_ATTR, layouts.capture_request())
        return record


def async_handler(handler, log_queue=None):
    """
    Puts ``handler`` behind a queue so records are sent from a listener thread rather than the one logging them.

    Returns the handler to attach to your loggers and the started listener, which should be stopped on shutdown.
    """
    log_queue = log_queue if log_queue is not None else queue.SimpleQueue()

    listener = logging.handlers.QueueListener(log_queue, handler, respect_handler_level=True)
    listener.start()

    return ElmahIoQueueHandler(log_queue), listener
