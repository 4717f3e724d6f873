"""Helpers for the HTTP side of FastCGI: number parsing, percent decoding
and url-encoded field splitting."""

from __future__ import annotations

import logging
import math
import struct
from enum import IntEnum
from typing import Iterable, List, Tuple, Union

logger = logging.getLogger(__name__)

Text = Union[str, bytes, bytearray, memoryview]

_FLOAT32_MAX = 3.4028234663852886e38


class RequestMethod(IntEnum):
    """HTTP request methods; member names are the wire labels."""

    ERROR = 0
    HEAD = 1
    GET = 2
    POST = 3
    PUT = 4
    DELETE = 5
    TRACE = 6
    OPTIONS = 7
    CONNECT = 8
    PATCH = 9


def _codes(data: Text) -> Iterable[int]:
    if isinstance(data, str):
        return (ord(char) for char in data)
    return bytes(data)


def _is_digit(code: int) -> bool:
    return 0x30 <= code <= 0x39


def to_text(data: Union[bytes, bytearray, memoryview]) -> str:
    """Decode UTF-8 bytes to text.

    Invalid UTF-8 is logged as a warning and yields an empty string.
    """
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Error in code conversion from utf8")
        return ""


def atoi(data: Text) -> int:
    """Parse a leading optionally negative decimal integer.

    Parsing stops at the first character that is not a digit; no digits
    gives zero.
    """
    codes = iter(_codes(data))
    result = 0
    negative = False
    first = True
    for code in codes:
        if first:
            first = False
            if code == ord("-"):
                negative = True
                continue
        if not _is_digit(code):
            break
        result = result * 10 + (code & 0x0F)
    return -result if negative else result


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def atof(data: Text) -> float:
    """Parse a leading optionally negative decimal number with a fraction.

    Digits and dots are consumed until anything else is met. Every dot
    restarts the fractional place at one tenth. The result has single
    precision.
    """
    result = 0.0
    multiplier = 0.0
    negative = False
    first = True
    for code in _codes(data):
        if first:
            first = False
            if code == ord("-"):
                negative = True
                continue
        if _is_digit(code):
            if multiplier == 0:
                result = result * 10 + (code & 0x0F)
            else:
                result += (code & 0x0F) * multiplier
                multiplier *= 0.1
        elif code == ord("."):
            multiplier = 0.1
        else:
            break
    if result > _FLOAT32_MAX:
        result = math.inf
    return _to_float32(-result if negative else result)


def _hex_value(code: int) -> int:
    lowered = code | 0x20
    if ord("a") <= lowered <= ord("f"):
        return lowered - 0x57
    if _is_digit(code):
        return code & 0x0F
    return 0


def percent_decode(data: Union[bytes, bytearray, memoryview]) -> bytes:
    """Decode percent escapes and turn ``+`` into spaces.

    Invalid hex digits count as zero; an escape cut short at the end of
    the input is dropped.
    """
    output = bytearray()
    pending = 0
    state = 0  # 0: normal, 1: first hex digit, 2: second hex digit
    for code in bytes(data):
        if state == 0:
            if code == ord("%"):
                pending = 0
                state = 1
            elif code == ord("+"):
                output.append(0x20)
            else:
                output.append(code)
        elif state == 1:
            pending = _hex_value(code) << 4
            state = 2
        else:
            output.append(pending | _hex_value(code))
            state = 0
    return bytes(output)


def decode_url_encoded(
    data: Union[bytes, bytearray, memoryview],
    separator: Union[str, bytes] = "&",
) -> List[Tuple[str, str]]:
    """Split url-encoded ``name=value`` fields into decoded pairs.

    Pairs are returned in input order and names may repeat. A name runs
    from the end of the previous pair to the first ``=``, so fields
    without ``=`` become part of the following name; trailing fields
    without ``=`` are dropped.
    """
    raw = bytes(data)
    sep = separator.encode("utf-8") if isinstance(separator, str) else bytes(separator)
    if not sep:
        raise ValueError("separator cannot be empty")
    size = len(raw)
    pairs: List[Tuple[str, str]] = []
    name_start = 0
    name = ""
    value_start = -1
    position = 0
    while position <= size:
        if value_start >= 0:
            if position == size or raw.startswith(sep, position):
                value = to_text(percent_decode(raw[value_start:position]))
                pairs.append((name, value))
                position += len(sep)
                name_start = position
                value_start = -1
                continue
        elif position != size and raw[position] == ord("="):
            name = to_text(percent_decode(raw[name_start:position]))
            value_start = position + 1
        position += 1
    return pairs