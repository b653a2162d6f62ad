import logging

import pytest
import requests_mock
from flask import Flask

from elmahio_logging.clients.elmahio.elmahio_client import ElmahIoClient
from elmahio_logging.handler import ElmahIoHandler

LOG_ID = "6d2dd5d2-4f0a-4e22-9d2f-1c0b3c1a2f10"


def _create_app(extra_config={}):  # noqa
    flask_app = Flask(__name__)
    flask_app.config.update(extra_config)
    ctx = flask_app.app_context()
    ctx.push()

    yield flask_app

    ctx.pop()


@pytest.fixture
def app():
    yield from _create_app()


@pytest.fixture
def rmock():
    with requests_mock.mock() as rmock:
        yield rmock


@pytest.fixture(autouse=True)
def restore_internal_logger():
    """Undo anything a test (or init_app) did to our own diagnostics logger"""
    internal_logger = logging.getLogger("elmahio_logging")
    handlers, level, propagate = internal_logger.handlers[:], internal_logger.level, internal_logger.propagate

    yield

    internal_logger.handlers[:] = handlers
    internal_logger.setLevel(level)
    internal_logger.propagate = propagate


@pytest.fixture
def make_record():
    def _make_record(msg="message to log", args=None, level=logging.ERROR, name="app.views", exc_info=None, **extra):
        record = logging.LogRecord(
            name=name, level=level, pathname="path", lineno=123, msg=msg, args=args, exc_info=exc_info
        )
        record.__dict__.update(extra)
        return record

    return _make_record


@pytest.fixture
def mock_client(mocker):
    return mocker.Mock(spec=ElmahIoClient)


@pytest.fixture
def elmahio_handler(mock_client):
    # no task delay, so every record is sent as soon as it's handled
    handler = ElmahIoHandler("test-key", LOG_ID, client=mock_client, task_delay=None)

    yield handler

    handler.close()


@pytest.fixture
def buffering_handler(mock_client):
    handler = ElmahIoHandler("test-key", LOG_ID, client=mock_client, task_delay=60)

    yield handler

    handler.close()
