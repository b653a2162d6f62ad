# Imported by handler threads as well as init_app, so no flask in here
import logging

from pythonjsonlogger.jsonlogger import JsonFormatter as BaseJSONFormatter

# batches go out from timer and listener threads, so which thread logged matters
LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s "%(message)s" [%(threadName)s in %(pathname)s:%(lineno)d]'
TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class _MicrosecondsMixin:
    """
    ``formatTime`` with a ``datefmt`` stops at whole seconds. Sends happen in quick succession, so we add the
    microseconds back on.
    """

    def formatTime(self, record, *args, **kwargs):
        seconds = super().formatTime(record, *args, **kwargs)
        microseconds = int(record.created % 1 * 1_000_000)
        return f"{seconds}.{microseconds:06d}"


class Formatter(_MicrosecondsMixin, logging.Formatter):
    pass


class JSONFormatter(_MicrosecondsMixin, BaseJSONFormatter):
    def process_log_record(self, log_record):
        log_record["time"] = log_record.pop("asctime", None)
        log_record["logType"] = "elmahio-internal"
        return log_record
