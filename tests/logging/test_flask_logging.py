import io
import json
import logging as builtin_logging

import pytest
from freezegun import freeze_time

from elmahio_logging.handler import ElmahIoHandler, ElmahIoQueueHandler
from elmahio_logging.logging import flask as logging
from elmahio_logging.models import Item

LOG_ID = "6d2dd5d2-4f0a-4e22-9d2f-1c0b3c1a2f10"


@pytest.fixture
def elmahio_app(app):
    app.config.update(
        {
            "ELMAHIO_API_KEY": "test-key",
            "ELMAHIO_LOG_ID": LOG_ID,
            "ELMAHIO_ASYNC": False,
        }
    )
    handlers, level = app.logger.handlers[:], app.logger.level

    yield app

    for handler in app.logger.handlers:
        if handler not in handlers:
            handler.close()
    app.logger.handlers[:] = handlers
    app.logger.setLevel(level)


def test_init_app_sets_config_defaults(app):
    assert logging.init_app(app) is None

    assert app.config["ELMAHIO_APPLICATION"] == app.name
    assert app.config["ELMAHIO_LOG_LEVEL"] == "WARNING"
    assert app.config["ELMAHIO_BATCH_SIZE"] == 50
    assert app.config["ELMAHIO_TASK_DELAY"] == 0.25
    assert app.config["ELMAHIO_ASYNC"] is True
    assert "elmahio" not in app.extensions


@pytest.mark.parametrize("missing", ("ELMAHIO_API_KEY", "ELMAHIO_LOG_ID"))
def test_init_app_without_credentials_does_nothing(elmahio_app, missing):
    elmahio_app.config[missing] = None
    handlers = elmahio_app.logger.handlers[:]
    stream = io.StringIO()
    configure_internal_logging = logging.configure_internal_logging

    def fake_configure(level, json):
        return configure_internal_logging(level, json=json, stream=stream)

    with pytest.MonkeyPatch.context() as monkeypatch:
        monkeypatch.setattr(logging, "configure_internal_logging", fake_configure)
        assert logging.init_app(elmahio_app) is None

    assert elmahio_app.logger.handlers == handlers
    assert "ELMAHIO_API_KEY and ELMAHIO_LOG_ID must both be set" in stream.getvalue()


def test_init_app_attaches_handler(elmahio_app):
    elmahio_app.config["ELMAHIO_APPLICATION"] = "shop"
    elmahio_app.config["ELMAHIO_BATCH_SIZE"] = 10

    handler = logging.init_app(elmahio_app)

    assert isinstance(handler, ElmahIoHandler)
    assert handler in elmahio_app.logger.handlers
    assert elmahio_app.extensions["elmahio"] is handler
    assert handler.level == builtin_logging.WARNING
    assert handler.log_id == LOG_ID
    assert handler.application == "shop"
    assert handler.capacity == 10
    assert handler.task_delay == 0.25


def test_init_app_lowers_app_logger_level_to_handler_level(elmahio_app):
    elmahio_app.config["ELMAHIO_LOG_LEVEL"] = "INFO"
    elmahio_app.logger.setLevel(builtin_logging.WARNING)

    handler = logging.init_app(elmahio_app)

    assert handler.level == builtin_logging.INFO
    assert elmahio_app.logger.level == builtin_logging.INFO


def test_init_app_async_puts_handler_behind_queue(elmahio_app, mocker):
    mock_atexit_register = mocker.patch("elmahio_logging.logging.flask.atexit.register")
    elmahio_app.config["ELMAHIO_ASYNC"] = True

    handler = logging.init_app(elmahio_app)

    try:
        (queue_handler,) = [h for h in elmahio_app.logger.handlers if isinstance(h, ElmahIoQueueHandler)]
        assert handler not in elmahio_app.logger.handlers
        assert queue_handler.level == builtin_logging.WARNING
        mock_atexit_register.assert_called_once()
    finally:
        # stop the listener
        mock_atexit_register.call_args[0][0]()


def test_app_errors_are_sent_with_request_fields(elmahio_app, mocker):
    mock_client = mocker.patch("elmahio_logging.handler.ElmahIoClient").return_value
    elmahio_app.config["ELMAHIO_TASK_DELAY"] = 0
    logging.init_app(elmahio_app)

    with elmahio_app.test_request_context("/orders/123?page=2", method="DELETE", headers={"Cookie": "session=abc"}):
        elmahio_app.logger.error("Could not delete order %s", "123", extra={"statuscode": 409})
        elmahio_app.logger.info("Not sent")

    mock_client.create_and_notify.assert_called_once_with(LOG_ID, mocker.ANY)
    message = mock_client.create_and_notify.call_args[0][1]
    assert message.title == "Could not delete order 123"
    assert message.method == "DELETE"
    assert message.url == "/orders/123"
    assert message.hostname == "localhost"
    assert message.status_code == 409
    assert message.application == elmahio_app.name
    assert message.source == elmahio_app.logger.name
    assert message.cookies == [Item("session", "abc")]
    assert message.query_string == [Item("page", "2")]


def test_configure_internal_logging_as_json():
    stream = io.StringIO()
    logging.configure_internal_logging("INFO", json=True, stream=stream)

    builtin_logging.getLogger("elmahio_logging.handler").info("Sending %s messages", 3)
    builtin_logging.getLogger("elmahio_logging.handler").debug("Not shown")

    (line,) = stream.getvalue().splitlines()
    logged = json.loads(line)
    assert logged["message"] == "Sending 3 messages"
    assert logged["levelname"] == "INFO"
    assert logged["name"] == "elmahio_logging.handler"
    assert logged["logType"] == "elmahio-internal"
    assert "asctime" not in logged


def test_configure_internal_logging_as_text():
    stream = io.StringIO()
    logging.configure_internal_logging("WARNING", json=False, stream=stream)

    builtin_logging.getLogger("elmahio_logging.clients").error("Request failed")

    assert 'elmahio_logging.clients ERROR "Request failed"' in stream.getvalue()


def test_internal_logging_does_not_reach_application_handlers(caplog):
    logging.configure_internal_logging("WARNING", stream=io.StringIO())

    builtin_logging.getLogger("elmahio_logging.handler").error("Request failed")

    assert caplog.records == []


def test_configure_internal_logging_replaces_previous_handler():
    logging.configure_internal_logging(stream=io.StringIO())
    stream_handler = logging.configure_internal_logging(stream=io.StringIO())

    assert builtin_logging.getLogger("elmahio_logging").handlers == [stream_handler]


@pytest.mark.parametrize(
    "frozen_time,logged_time",
    [
        ("2023-10-31 00:00:01.12345678", "2023-10-31T00:00:01.123456"),
        ("2020-11-18 12:12:12.000000", "2020-11-18T12:12:12.000000"),
    ],
)
def test_internal_log_timeformat_fractional_seconds(frozen_time, logged_time):
    with freeze_time(frozen_time):
        record = builtin_logging.LogRecord(
            name="elmahio_logging", level="info", pathname="path", lineno=123, msg="message", exc_info=None, args=None
        )

    formatter = logging.JSONFormatter(logging.LOG_FORMAT, logging.TIME_FORMAT)

    assert json.loads(formatter.format(record))["time"] == logged_time


def test_internal_text_logs_name_the_thread_that_logged():
    stream = io.StringIO()
    logging.configure_internal_logging("WARNING", json=False, stream=stream)

    builtin_logging.getLogger("elmahio_logging.handler").error("Request failed")

    assert "[MainThread in " in stream.getvalue()
