"""Data structures and constants of the FastCGI protocol, version 1."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterator, Optional, Tuple, Union

VERSION = 1
"""Version of the FastCGI protocol implemented here."""

CHUNK_SIZE = 8
"""Every FastCGI record is a multiple of this many bytes."""

HEADER_SIZE = 8
"""Size in bytes of a record header."""

MAX_CONTENT_LENGTH = 0xFFFF
"""Largest content length a single record can carry."""

BAD_FCGI_ID = 0xFFFF
"""Request id reserved to mean a bad or special request."""

_HEADER = struct.Struct(">BBHHBB")
_BEGIN_REQUEST = struct.Struct(">HB5x")
_UNKNOWN_TYPE = struct.Struct(">B7x")
_END_REQUEST = struct.Struct(">iB3x")


class RecordType(IntEnum):
    """Types of records within the FastCGI protocol."""

    BEGIN_REQUEST = 1
    ABORT_REQUEST = 2
    END_REQUEST = 3
    PARAMS = 4
    IN = 5
    OUT = 6
    ERR = 7
    DATA = 8
    GET_VALUES = 9
    GET_VALUES_RESULT = 10
    UNKNOWN_TYPE = 11


class Role(IntEnum):
    """Roles a FastCGI application may play."""

    RESPONDER = 1
    AUTHORIZER = 2
    FILTER = 3


class ProtocolStatus(IntEnum):
    """Statuses a request may declare when complete."""

    REQUEST_COMPLETE = 0
    CANT_MPX_CONN = 1
    OVERLOADED = 2
    UNKNOWN_ROLE = 3


def _as_enum(enum_type: type, value: int) -> Union[IntEnum, int]:
    try:
        return enum_type(value)
    except ValueError:
        return value


@dataclass(frozen=True, order=True)
class RequestId:
    """Identifies a request by the socket it arrived on and its FastCGI id.

    Ordering is by socket first and then by id, so all requests of one
    socket sort next to each other.
    """

    socket: Any = None
    fcgi_id: int = BAD_FCGI_ID


@dataclass
class Header:
    """The eight byte header that starts every FastCGI record."""

    version: int
    type: Union[RecordType, int]
    fcgi_id: int
    content_length: int
    padding_length: int
    reserved: int = 0

    def pack(self) -> bytes:
        """Return the header as wire bytes."""
        try:
            return _HEADER.pack(
                self.version,
                int(self.type),
                self.fcgi_id,
                self.content_length,
                self.padding_length,
                self.reserved,
            )
        except struct.error as error:
            raise ValueError(f"header field out of range: {error}") from None

    @classmethod
    def unpack(cls, data: bytes) -> "Header":
        """Parse a header from the first eight bytes of ``data``."""
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"a record header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        version, record_type, fcgi_id, length, padding, reserved = (
            _HEADER.unpack_from(data)
        )
        return cls(
            version,
            _as_enum(RecordType, record_type),
            fcgi_id,
            length,
            padding,
            reserved,
        )


@dataclass
class BeginRequest:
    """Body of a BEGIN_REQUEST record."""

    KEEP_CONN_BIT = 1

    role: Union[Role, int]
    flags: int = 0

    @classmethod
    def unpack(cls, data: bytes) -> "BeginRequest":
        """Parse the body from the first eight bytes of ``data``."""
        if len(data) < _BEGIN_REQUEST.size:
            raise ValueError(
                f"a begin request body needs {_BEGIN_REQUEST.size} bytes, "
                f"got {len(data)}"
            )
        role, flags = _BEGIN_REQUEST.unpack_from(data)
        return cls(_as_enum(Role, role), flags)

    def kill(self) -> bool:
        """True when the connection should be closed once the request ends."""
        return not self.flags & self.KEEP_CONN_BIT


@dataclass
class UnknownType:
    """Body of an UNKNOWN_TYPE record, sent in reply to unknown records."""

    type: int

    def pack(self) -> bytes:
        """Return the body as wire bytes."""
        return _UNKNOWN_TYPE.pack(int(self.type))


@dataclass
class EndRequest:
    """Body of an END_REQUEST record."""

    app_status: int
    protocol_status: ProtocolStatus = ProtocolStatus.REQUEST_COMPLETE

    def pack(self) -> bytes:
        """Return the body as wire bytes."""
        return _END_REQUEST.pack(self.app_status, int(self.protocol_status))


def get_record_size(content_length: int) -> int:
    """Length of a record holding ``content_length`` bytes of content.

    The result includes header and padding and is a multiple of
    ``CHUNK_SIZE``. Content lengths beyond ``MAX_CONTENT_LENGTH`` are
    treated as ``MAX_CONTENT_LENGTH``.
    """
    if content_length < 0:
        raise ValueError("content length cannot be negative")
    content_length = min(content_length, MAX_CONTENT_LENGTH)
    unpadded = HEADER_SIZE + content_length
    return -(-unpadded // CHUNK_SIZE) * CHUNK_SIZE


def _read_length(data: bytes, offset: int) -> Optional[Tuple[int, int]]:
    if offset >= len(data):
        return None
    first = data[offset]
    if first & 0x80:
        if offset + 4 > len(data):
            return None
        (length,) = struct.unpack_from(">I", data, offset)
        return length & 0x7FFFFFFF, offset + 4
    return first, offset + 1


def process_param_header(
    data: bytes, offset: int = 0
) -> Optional[Tuple[bytes, bytes, int]]:
    """Parse one name-value pair of a PARAMS body starting at ``offset``.

    Returns ``(name, value, end)`` where ``end`` is the offset just past
    the value, or None if ``data`` does not hold the whole pair.
    """
    parsed = _read_length(data, offset)
    if parsed is None:
        return None
    name_length, offset = parsed
    parsed = _read_length(data, offset)
    if parsed is None:
        return None
    value_length, offset = parsed
    value_start = offset + name_length
    end = value_start + value_length
    if end > len(data):
        return None
    return bytes(data[offset:value_start]), bytes(data[value_start:end]), end


def iter_params(data: bytes) -> Iterator[Tuple[bytes, bytes]]:
    """Yield every complete ``(name, value)`` pair in a PARAMS body."""
    offset = 0
    while True:
        parsed = process_param_header(data, offset)
        if parsed is None:
            return
        name, value, offset = parsed
        yield name, value


def _encode_length(length: int) -> bytes:
    if length < 0x80:
        return bytes((length,))
    if length > 0x7FFFFFFF:
        raise ValueError("parameter too long")
    return struct.pack(">I", length | 0x80000000)


def encode_param(name: bytes, value: bytes) -> bytes:
    """Encode one name-value pair in the PARAMS wire format."""
    return _encode_length(len(name)) + _encode_length(len(value)) + name + value


def management_reply(name: bytes, value: bytes) -> bytes:
    """Build a complete GET_VALUES_RESULT record for one name-value pair.

    Name and value are each limited to 127 bytes.
    """
    if len(name) > 127 or len(value) > 127:
        raise ValueError("management reply names and values are limited to 127 bytes")
    content = bytes((len(name), len(value))) + name + value
    padding = get_record_size(len(content)) - HEADER_SIZE - len(content)
    header = Header(
        VERSION,
        RecordType.GET_VALUES_RESULT,
        0,
        len(content),
        padding,
    )
    return header.pack() + content + bytes(padding)