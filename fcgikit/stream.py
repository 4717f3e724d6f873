"""Output stream that packages data into FastCGI records."""

from __future__ import annotations

from typing import BinaryIO, Callable, Union

from .protocol import (
    HEADER_SIZE,
    MAX_CONTENT_LENGTH,
    VERSION,
    Header,
    RecordType,
    RequestId,
    get_record_size,
)

BUFFER_SIZE = 8192
"""Number of bytes buffered before a record is sent automatically."""

SendFunction = Callable[[object, bytes], None]


class FcgiStream:
    """Buffered writer for the OUT or ERR stream of one FastCGI request.

    Text is encoded as UTF-8. Buffered data is sent as complete records
    (header, content and padding) through ``send(socket, record)`` when the
    buffer fills, on ``flush()`` and on ``close()``. ``dump()`` and
    ``dump_stream()`` send raw bytes, bypassing the buffer.
    """

    def __init__(
        self,
        request_id: RequestId,
        record_type: Union[RecordType, int],
        send: SendFunction,
    ) -> None:
        self.request_id = request_id
        self.record_type = record_type
        self._send = send
        self._buffer = bytearray()
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the stream has been closed."""
        return self._closed

    def __enter__(self) -> "FcgiStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed stream")

    def _record(self, content: bytes) -> bytes:
        padding = get_record_size(len(content)) - HEADER_SIZE - len(content)
        header = Header(
            VERSION,
            self.record_type,
            self.request_id.fcgi_id,
            len(content),
            padding,
        )
        return header.pack() + content + bytes(padding)

    def _send_records(self, data: bytes) -> None:
        view = memoryview(data)
        for start in range(0, len(view), MAX_CONTENT_LENGTH):
            chunk = bytes(view[start:start + MAX_CONTENT_LENGTH])
            self._send(self.request_id.socket, self._record(chunk))

    def write(self, data: Union[str, bytes, bytearray, memoryview]) -> int:
        """Buffer ``data`` for sending and return how much was accepted."""
        self._check_open()
        if isinstance(data, str):
            encoded = data.encode("utf-8")
        elif isinstance(data, (bytes, bytearray, memoryview)):
            encoded = bytes(data)
        else:
            raise TypeError(
                f"expected str or bytes-like object, got {type(data).__name__}"
            )
        self._buffer += encoded
        while len(self._buffer) >= BUFFER_SIZE:
            chunk = bytes(self._buffer[:BUFFER_SIZE])
            del self._buffer[:BUFFER_SIZE]
            self._send_records(chunk)
        return len(data)

    def flush(self) -> None:
        """Send everything in the buffer as records."""
        if not self._buffer:
            return
        pending = bytes(self._buffer)
        self._buffer.clear()
        self._send_records(pending)

    def dump(self, data: Union[bytes, bytearray, memoryview]) -> None:
        """Flush the buffer, then send raw ``data`` directly as records."""
        self._check_open()
        self.flush()
        self._send_records(bytes(data))

    def dump_stream(self, stream: BinaryIO) -> None:
        """Flush the buffer, then send a binary stream until it is exhausted."""
        self._check_open()
        self.flush()
        while True:
            chunk = stream.read(MAX_CONTENT_LENGTH)
            if not chunk:
                break
            self._send(self.request_id.socket, self._record(bytes(chunk)))

    def close(self) -> None:
        """Flush remaining data and refuse further writes."""
        if self._closed:
            return
        self.flush()
        self._closed = True