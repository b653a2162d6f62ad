from elmahio_logging.clients.elmahio.elmahio_client import ElmahIoClient, ElmahIoError  # noqa: F401
