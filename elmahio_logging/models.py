import dataclasses
import datetime
import enum
import typing
from typing import Optional

DATETIME_FORMAT_ISO8601 = "%Y-%m-%dT%H:%M:%S.%fZ"


class Severity(enum.Enum):
    VERBOSE = "Verbose"
    DEBUG = "Debug"
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"


@dataclasses.dataclass
class Item:
    key: str
    value: Optional[str] = None

    @property
    def request_data(self):
        return {"key": self.key, "value": self.value}


@dataclasses.dataclass
class CreateMessage:
    title: str
    title_template: Optional[str] = None
    severity: Optional[Severity] = None

    # always stored and sent as UTC
    date_time: Optional[datetime.datetime] = None

    detail: Optional[str] = None
    data: Optional[typing.List[Item]] = None
    source: Optional[str] = None
    hostname: Optional[str] = None
    application: Optional[str] = None
    user: Optional[str] = None
    method: Optional[str] = None
    version: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    status_code: Optional[int] = None
    server_variables: Optional[typing.List[Item]] = None
    cookies: Optional[typing.List[Item]] = None
    form: Optional[typing.List[Item]] = None
    query_string: Optional[typing.List[Item]] = None

    @property
    def request_data(self):
        data = {
            "title": self.title,
            "titleTemplate": self.title_template,
            "severity": self.severity.value if self.severity else None,
            "dateTime": self.date_time.strftime(DATETIME_FORMAT_ISO8601) if self.date_time else None,
            "detail": self.detail,
            "source": self.source,
            "hostname": self.hostname,
            "application": self.application,
            "user": self.user,
            "method": self.method,
            "version": self.version,
            "url": self.url,
            "type": self.type,
            "statusCode": self.status_code,
        }

        for key, items in (
            ("data", self.data),
            ("serverVariables", self.server_variables),
            ("cookies", self.cookies),
            ("form", self.form),
            ("queryString", self.query_string),
        ):
            data[key] = [item.request_data for item in items] if items is not None else None

        # the api treats missing and null the same way, so keep the payload small
        return {key: value for key, value in data.items() if value is not None}
