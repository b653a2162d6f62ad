import logging

import requests

from elmahio_logging.version import __version__

logger = logging.getLogger(__name__)


class ElmahIoError(Exception):
    def __init__(self, message=None, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @classmethod
    def from_exception(cls, e):
        try:
            message = e.response.text or e.response.reason
            status_code = e.response.status_code
        except AttributeError:
            message = "connection error"
            status_code = 503

        return cls(message, status_code)


class ElmahIoClient:
    """
    A client for the elmah.io messages API

    ``on_message`` is called with each message just before it is sent, ``on_message_fail`` with each message and
    the ``ElmahIoError`` when sending fails. Failed requests are not retried.
    """

    API_URL = "https://api.elmah.io"
    CREATE_MESSAGE_PATH = "/v3/messages/{log_id}"
    CREATE_BULK_MESSAGES_PATH = "/v3/messages/{log_id}/_bulk"

    # long enough for a bulk request, short enough not to back up the logging queue
    TIMEOUT = 5

    def __init__(self, api_key, api_url=None, timeout=TIMEOUT, proxies=None, user_agent=None):
        self.api_key = api_key
        self.api_url = (api_url or self.API_URL).rstrip("/")
        self.timeout = timeout
        self.on_message = None
        self.on_message_fail = None

        self.requests_session = requests.Session()
        self.requests_session.headers["User-Agent"] = user_agent or f"elmahio-logging/{__version__}"
        if proxies:
            self.requests_session.proxies.update(proxies)

    def create_and_notify(self, log_id, message):
        """
        Sends a single message, returning the location of the created message or None if sending failed.
        """
        self._notify(message)

        try:
            response = self._post(self.CREATE_MESSAGE_PATH.format(log_id=log_id), message.request_data)
        except ElmahIoError as error:
            self._notify_fail([message], error)
            return None

        return response.headers.get("Location")

    def create_bulk_and_notify(self, log_id, messages):
        """
        Sends several messages in one request, returning the per-message results reported by the api or None if
        sending failed.
        """
        for message in messages:
            self._notify(message)

        try:
            response = self._post(
                self.CREATE_BULK_MESSAGES_PATH.format(log_id=log_id),
                [message.request_data for message in messages],
            )
        except ElmahIoError as error:
            self._notify_fail(messages, error)
            return None

        return response.json() if response.content else []

    def _post(self, path, data):
        try:
            response = self.requests_session.post(
                f"{self.api_url}{path}",
                params={"api_key": self.api_key},
                json=data,
                timeout=self.timeout,
            )

            response.raise_for_status()

        except requests.RequestException as e:
            error = ElmahIoError.from_exception(e)
            logger.error("elmah.io request failed with %s '%s'", error.status_code, error.message)

            raise error from e

        return response

    def _notify(self, message):
        if self.on_message is not None:
            self.on_message(message)

    def _notify_fail(self, messages, error):
        if self.on_message_fail is not None:
            for message in messages:
                self.on_message_fail(message, error)
