"""The HTTP environment of a FastCGI request: parameters, cookies, query
strings and POST data."""

from __future__ import annotations

import calendar
import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple, Union

from .httputil import (
    RequestMethod,
    atoi,
    decode_url_encoded,
    percent_decode,
    to_text,
)
from .protocol import iter_params

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_MULTIPART = "multipart/form-data"
_URL_ENCODED = "application/x-www-form-urlencoded"

_NAME = b'name="'
_FILENAME = b'filename="'
_CONTENT_TYPE = b"Content-Type: "
_BODY = b"\r\n\r\n"

_MONTHS = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_HTTP_DATE = re.compile(
    r"\s*[A-Za-z]{3},\s*(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})\s+"
    r"(\d{1,2}):(\d{1,2}):(\d{1,2})\s+GMT"
)


def _parse_http_date(text: str) -> Optional[int]:
    match = _HTTP_DATE.match(text)
    if match is None:
        return None
    day, month_name, year, hour, minute, second = match.groups()
    month = _MONTHS.get(month_name.lower())
    if month is None:
        return None
    fields = (int(year), month, int(day), int(hour), int(minute), int(second))
    try:
        calendar.datetime.datetime(*fields)
    except ValueError:
        return None
    return calendar.timegm(fields + (0, 0, 0))


def _parse_address(data: bytes) -> Optional[IpAddress]:
    try:
        return ipaddress.ip_address(data.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        return None


def _split_path(data: bytes) -> List[str]:
    return [
        to_text(percent_decode(segment))
        for segment in data.split(b"/")
        if segment
    ]


def _accept_languages(data: bytes) -> List[str]:
    languages = []
    start = 0
    while start < len(data):
        end = data.find(b",", start)
        if end < 0:
            end = len(data)
        group = data[start:end]
        semicolon = group.find(b";")
        if semicolon >= 0:
            group = group[:semicolon]
        languages.append(to_text(group.strip(b" ")).replace("-", "_", 1))
        start = end + 1
    return languages


@dataclass
class File:
    """A file uploaded through a multipart POST."""

    filename: str = ""
    content_type: str = ""
    data: bytes = b""

    @property
    def size(self) -> int:
        """Size of the file contents in bytes."""
        return len(self.data)


class _Part(Enum):
    HEADER = auto()
    NAME = auto()
    FILENAME = auto()
    CONTENT_TYPE = auto()
    BODY = auto()


@dataclass
class Environment:
    """Everything known about an HTTP request from its FastCGI parameters.

    ``gets``, ``cookies`` and ``posts`` hold ``(name, value)`` pairs in the
    order they arrived; names may repeat. ``files`` holds ``(name, File)``
    pairs. Parameters not recognised end up in ``others``.
    """

    host: str = ""
    origin: str = ""
    user_agent: str = ""
    accept_content_types: str = ""
    accept_languages: List[str] = field(default_factory=list)
    accept_charsets: str = ""
    authorization: str = ""
    referer: str = ""
    content_type: str = ""
    root: str = ""
    script_name: str = ""
    request_method: RequestMethod = RequestMethod.ERROR
    request_uri: str = ""
    path_info: List[str] = field(default_factory=list)
    etag: int = 0
    keep_alive: int = 0
    content_length: int = 0
    server_address: Optional[IpAddress] = None
    remote_address: Optional[IpAddress] = None
    server_port: int = 0
    remote_port: int = 0
    if_modified_since: Optional[int] = None
    boundary: bytes = b""
    others: Dict[str, str] = field(default_factory=dict)
    gets: List[Tuple[str, str]] = field(default_factory=list)
    cookies: List[Tuple[str, str]] = field(default_factory=list)
    posts: List[Tuple[str, str]] = field(default_factory=list)
    files: List[Tuple[str, File]] = field(default_factory=list)
    _post_buffer: bytearray = field(default_factory=bytearray, repr=False)

    def fill(self, data: bytes) -> None:
        """Absorb the name-value pairs of a PARAMS record body."""
        for name, value in iter_params(bytes(data)):
            if not self._absorb(name, value):
                self.others[to_text(name)] = to_text(value)

    def _absorb(self, name: bytes, value: bytes) -> bool:
        if name == b"HTTP_HOST":
            self.host = to_text(value)
        elif name == b"PATH_INFO":
            self.path_info.extend(_split_path(value))
        elif name == b"HTTP_ACCEPT":
            self.accept_content_types = to_text(value)
        elif name == b"HTTP_COOKIE":
            self.cookies.extend(decode_url_encoded(value, "; "))
        elif name == b"SERVER_ADDR":
            self.server_address = _parse_address(value)
        elif name == b"REMOTE_ADDR":
            self.remote_address = _parse_address(value)
        elif name == b"SERVER_PORT":
            self.server_port = atoi(value)
        elif name == b"REMOTE_PORT":
            self.remote_port = atoi(value)
        elif name == b"SCRIPT_NAME":
            self.script_name = to_text(value)
        elif name == b"REQUEST_URI":
            self.request_uri = to_text(value)
        elif name == b"HTTP_ORIGIN":
            self.origin = to_text(value)
        elif name == b"HTTP_REFERER":
            self.referer = to_text(value)
        elif name == b"CONTENT_TYPE":
            self._set_content_type(value)
        elif name == b"QUERY_STRING":
            self.gets.extend(decode_url_encoded(value))
        elif name == b"DOCUMENT_ROOT":
            self.root = to_text(value)
        elif name == b"REQUEST_METHOD":
            label = value.decode("latin-1")
            self.request_method = RequestMethod.__members__.get(
                label, RequestMethod.ERROR
            )
        elif name == b"CONTENT_LENGTH":
            self.content_length = atoi(value)
        elif name == b"HTTP_USER_AGENT":
            self.user_agent = to_text(value)
        elif name == b"HTTP_KEEP_ALIVE":
            self.keep_alive = atoi(value)
        elif name == b"HTTP_IF_NONE_MATCH":
            self.etag = atoi(value)
        elif name == b"HTTP_AUTHORIZATION":
            self.authorization = to_text(value)
        elif name == b"HTTP_ACCEPT_CHARSET":
            self.accept_charsets = to_text(value)
        elif name == b"HTTP_ACCEPT_LANGUAGE":
            self.accept_languages.extend(_accept_languages(value))
        elif name == b"HTTP_IF_MODIFIED_SINCE":
            self.if_modified_since = _parse_http_date(
                value.decode("latin-1")
            )
        else:
            return False
        return True

    def _set_content_type(self, value: bytes) -> None:
        semicolon = value.find(b";")
        if semicolon < 0:
            self.content_type = to_text(value)
            return
        self.content_type = to_text(value[:semicolon])
        equals = value.find(b"=", semicolon)
        if equals >= 0:
            self.boundary = value[equals + 1:]

    def fill_post_buffer(self, data: bytes) -> None:
        """Append a chunk of raw POST data."""
        self._post_buffer += data

    def parse_post_buffer(self) -> bool:
        """Parse the gathered POST data into ``posts`` and ``files``.

        Returns True if there was nothing to parse or the content type was
        understood, False otherwise.
        """
        if not self._post_buffer:
            return True
        if self.content_type == _MULTIPART:
            self._parse_multipart()
            return True
        if self.content_type == _URL_ENCODED:
            self.posts.extend(decode_url_encoded(self._post_buffer))
            return True
        return False

    def _parse_multipart(self) -> None:
        buffer = bytes(self._post_buffer)
        boundary = self.boundary
        name_start = name_end = None
        filename_start = filename_end = None
        type_start = type_end = None
        body_start = None
        state = _Part.HEADER
        position = 0
        while position < len(buffer):
            byte = buffer[position]
            if state is _Part.HEADER:
                if name_end is None and buffer.startswith(_NAME, position):
                    position += len(_NAME) - 1
                    name_start = position + 1
                    state = _Part.NAME
                elif filename_end is None and buffer.startswith(
                    _FILENAME, position
                ):
                    position += len(_FILENAME) - 1
                    filename_start = position + 1
                    state = _Part.FILENAME
                elif type_end is None and buffer.startswith(
                    _CONTENT_TYPE, position
                ):
                    position += len(_CONTENT_TYPE) - 1
                    type_start = position + 1
                    state = _Part.CONTENT_TYPE
                elif body_start is None and buffer.startswith(_BODY, position):
                    position += len(_BODY) - 1
                    body_start = position + 1
                    state = _Part.BODY
            elif state is _Part.NAME:
                if byte == ord('"'):
                    name_end = position
                    state = _Part.HEADER
            elif state is _Part.FILENAME:
                if byte == ord('"'):
                    filename_end = position
                    state = _Part.HEADER
            elif state is _Part.CONTENT_TYPE:
                if byte in b"\r\n":
                    type_end = position
                    state = _Part.HEADER
                    continue
            elif buffer.startswith(boundary, position):
                body_end = position - 2
                if body_end < body_start:
                    body_end = body_start
                elif (
                    body_end - body_start >= 2
                    and buffer[body_end - 2:body_end] == b"\r\n"
                ):
                    body_end -= 2
                if name_end is not None:
                    name = to_text(buffer[name_start:name_end])
                    body = buffer[body_start:body_end]
                    if type_end is not None:
                        upload = File(
                            content_type=to_text(buffer[type_start:type_end])
                        )
                        if filename_end is not None:
                            upload.filename = to_text(
                                buffer[filename_start:filename_end]
                            )
                        upload.data = body
                        self.files.append((name, upload))
                    else:
                        self.posts.append((name, to_text(body)))
                state = _Part.HEADER
                name_start = name_end = None
                filename_start = filename_end = None
                type_start = type_end = None
                body_start = None
            position += 1