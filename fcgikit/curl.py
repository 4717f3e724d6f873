"""HTTP transfers composed like a stream.

A request body is written into a ``Curl`` object, the transfer is
performed, and the response code, headers and body are collected back
into it.
"""

from __future__ import annotations

import http.client
import logging
import ssl
import urllib.error
import urllib.request
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

_WHITESPACE = b" \n\r\t"
_READ_SIZE = 16384

BytesLike = Union[bytes, bytearray, memoryview]


class CurlError(Exception):
    """A transfer could not be carried out."""


def parse_header_line(line: BytesLike) -> Optional[Tuple[bytes, bytes]]:
    """Split a raw response header line into ``(key, value)``.

    The key is everything before the first colon, untouched. The value is
    everything after it with spaces, tabs and line breaks stripped from
    both ends. Lines without a colon give None.
    """
    raw = bytes(line)
    colon = raw.find(b":")
    if colon < 0:
        return None
    return raw[:colon], raw[colon + 1:].strip(_WHITESPACE)


class Curl:
    """One HTTP transfer: request set-up, body and collected response.

    Data written with ``write()`` becomes the request body; a transfer
    with a body is a POST, one without is a GET. With ``text`` set the
    response body and headers are decoded from UTF-8 into ``str``,
    otherwise the body stays ``bytes`` and headers are read as latin-1.

    ``callback``, if set, is called with no arguments by a ``Curler`` once
    the transfer is complete.
    """

    def __init__(self, text: bool = False) -> None:
        self.text = text
        self.callback: Optional[Callable[[], Any]] = None
        self._url: Optional[str] = None
        self._verify = True
        self._headers: List[bytes] = []
        self._chunks: Deque[bytes] = deque()
        self._read_counter = 0
        self._prepared = False
        self._method = "GET"
        self._post_size = 0
        self._clear_response()

    def _clear_response(self) -> None:
        self._response_bytes = bytearray()
        self._response_text: List[str] = []
        self._response_headers: List[Tuple[str, str]] = []
        self._expected_length: Optional[int] = None
        self._response_code = 0
        self.error = ""

    @property
    def url(self) -> Optional[str]:
        """The URL the transfer goes to, None if not set."""
        return self._url

    @property
    def headers(self) -> List[bytes]:
        """Request header lines added so far."""
        return list(self._headers)

    @property
    def ssl_verified(self) -> bool:
        """True if peer certificates and host names are checked."""
        return self._verify

    @property
    def method(self) -> str:
        """HTTP method chosen by the last ``prepare()``."""
        return self._method

    @property
    def post_size(self) -> int:
        """Size in bytes of the request body found by ``prepare()``."""
        return self._post_size

    @property
    def response_code(self) -> int:
        """HTTP status of the response, 0 before a response arrived."""
        return self._response_code

    @property
    def response_headers(self) -> List[Tuple[str, str]]:
        """Response headers as ``(key, value)`` pairs ordered by key."""
        return sorted(self._response_headers, key=lambda pair: pair[0])

    @property
    def response_data(self) -> Union[bytes, str]:
        """The response body gathered so far."""
        if self.text:
            return "".join(self._response_text)
        return bytes(self._response_bytes)

    @property
    def expected_length(self) -> Optional[int]:
        """Body length announced by a Content-Length header, if any."""
        return self._expected_length

    def set_url(self, url: Union[str, BytesLike]) -> None:
        """Set the URL to transfer from or to."""
        if isinstance(url, str):
            try:
                url.encode("utf-8")
            except UnicodeEncodeError:
                logger.warning("Error in code conversion to utf8 in curl url")
                return
            self._url = url
        else:
            self._url = bytes(url).decode("latin-1")

    def add_header(self, header: Union[str, BytesLike]) -> None:
        """Add a raw request header line such as ``"Accept: text/html"``."""
        if isinstance(header, str):
            try:
                encoded = header.encode("utf-8")
            except UnicodeEncodeError:
                logger.warning("Error in code conversion to utf8 in curl add header")
                return
        else:
            encoded = bytes(header)
        self._headers.append(encoded)

    def verify_ssl(self, verify: bool) -> None:
        """Turn checking of peer certificates and host names on or off."""
        self._verify = bool(verify)

    def write(self, data: Union[str, BytesLike]) -> int:
        """Append to the request body and return how much was accepted.

        Text is encoded as UTF-8. Writing after ``prepare()`` is refused
        until ``reset()``.
        """
        if self._prepared:
            raise ValueError("request body is closed; call reset() first")
        if isinstance(data, str):
            encoded = data.encode("utf-8")
        elif isinstance(data, (bytes, bytearray, memoryview)):
            encoded = bytes(data)
        else:
            raise TypeError(
                f"expected str or bytes-like object, got {type(data).__name__}"
            )
        if encoded:
            self._chunks.append(encoded)
        return len(data)

    def prepare(self) -> None:
        """Close the request body and choose the method for the transfer."""
        self._prepared = True
        size = sum(len(chunk) for chunk in self._chunks)
        if size > 0:
            self._read_counter = 0
            self._method = "POST"
            self._post_size = size
        else:
            self._method = "GET"
            self._post_size = 0

    def read_body(self, size: int) -> bytes:
        """Take up to ``size`` bytes of the request body for sending."""
        pieces = []
        space = size
        while space > 0 and self._chunks:
            chunk = self._chunks[0]
            piece = chunk[self._read_counter:self._read_counter + space]
            self._read_counter += len(piece)
            if self._read_counter >= len(chunk):
                self._chunks.popleft()
                self._read_counter = 0
            pieces.append(piece)
            space -= len(piece)
        return b"".join(pieces)

    def inject_header(self, line: BytesLike) -> int:
        """Record one raw response header line; return the bytes consumed."""
        raw = bytes(line)
        parsed = parse_header_line(raw)
        if parsed is None:
            return len(raw)
        key_bytes, value_bytes = parsed
        if self.text:
            try:
                key = key_bytes.decode("utf-8")
                value = value_bytes.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Error in code conversion from utf8 in injectHeader")
                return len(raw)
        else:
            key = key_bytes.decode("latin-1")
            value = value_bytes.decode("latin-1")
        if key in ("Content-Length", "content-length"):
            digits = value.strip()
            if digits.isdigit():
                self._expected_length = int(digits)
        self._response_headers.append((key, value))
        return len(raw)

    def inject_response(self, data: BytesLike) -> int:
        """Append response body data; return the bytes consumed.

        In text mode an incomplete UTF-8 sequence at the end is left
        unconsumed so it can be offered again with the bytes that follow.
        Invalid UTF-8 is logged and discarded.
        """
        raw = bytes(data)
        if not self.text:
            self._response_bytes += raw
            return len(raw)
        try:
            decoded = raw.decode("utf-8")
            used = len(raw)
        except UnicodeDecodeError as error:
            if error.reason != "unexpected end of data":
                logger.error("injectResponse() code conversion failed")
                return len(raw)
            decoded = raw[:error.start].decode("utf-8")
            used = error.start
        self._response_text.append(decoded)
        return used

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self._verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _build_request(self) -> urllib.request.Request:
        body = None
        if self._method == "POST":
            body = b"".join(iter(lambda: self.read_body(_READ_SIZE), b""))
        request = urllib.request.Request(self._url, data=body, method=self._method)
        for line in self._headers:
            parsed = parse_header_line(line)
            if parsed is not None:
                key, value = parsed
                request.add_header(key.decode("latin-1"), value.decode("latin-1"))
        return request

    def _collect(self, code: int, headers: Any, body: Any) -> None:
        self._response_code = code
        for key, value in headers.items():
            self.inject_header(f"{key}: {value}\r\n".encode("latin-1", "replace"))
        pending = b""
        while True:
            chunk = body.read(_READ_SIZE)
            if not chunk:
                break
            buffered = pending + chunk
            used = self.inject_response(buffered)
            pending = buffered[used:]
        if pending:
            logger.warning("Incomplete utf8 sequence at end of curl response")

    def perform(self) -> None:
        """Carry out the transfer and gather the response.

        A response with an error status is still a completed transfer.
        Failures to transfer at all raise ``CurlError``, whose message is
        also kept in ``error``.
        """
        if not self._prepared:
            self.prepare()
        if not self._url:
            self.error = "No URL set"
            raise CurlError(self.error)
        try:
            request = self._build_request()
            with urllib.request.urlopen(request, context=self._ssl_context()) as response:
                self._collect(response.status, response.headers, response)
        except urllib.error.HTTPError as error:
            with error:
                self._collect(error.code, error.headers, error)
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as error:
            self.error = str(error)
            raise CurlError(self.error) from error

    def reset(self) -> None:
        """Clear the URL, options, request body and response for reuse.

        Request header lines added with ``add_header()`` are kept.
        """
        self._url = None
        self._verify = True
        self._chunks.clear()
        self._read_counter = 0
        self._prepared = False
        self._method = "GET"
        self._post_size = 0
        self._clear_response()