"""Typed SQL query parameters encoded in the PostgreSQL binary format."""

from __future__ import annotations

import datetime as _dt
import ipaddress
import struct
from enum import IntEnum
from typing import Any, List, Optional, Sequence, Tuple, Union

_UTC = _dt.timezone.utc
_TIMESTAMP_EPOCH = _dt.datetime(2000, 1, 1, tzinfo=_UTC)
_DATE_EPOCH = _dt.date(2000, 1, 1)
_MICROSECOND = _dt.timedelta(microseconds=1)

INET6_ADDRESS_FAMILY = 3
"""Address family byte that marks an IPv6 value in the binary inet format."""

BINARY_FORMAT = 1
"""Format code telling the server a parameter is in binary form."""

_ARRAY_SIZE = struct.Struct(">i")


class SqlType(IntEnum):
    """SQL types a parameter can carry; each value is the type's oid."""

    BOOL = 16
    BYTEA = 17
    BIGINT = 20
    SMALLINT = 21
    INTEGER = 23
    TEXT = 25
    INET = 869
    REAL = 700
    DOUBLE_PRECISION = 701
    DATE = 1082
    TIMESTAMPTZ = 1184
    SMALLINT_ARRAY = 1005
    INTEGER_ARRAY = 1007
    TEXT_ARRAY = 1009
    BIGINT_ARRAY = 1016
    REAL_ARRAY = 1021
    DOUBLE_PRECISION_ARRAY = 1022

    @property
    def oid(self) -> int:
        """The PostgreSQL oid of the type."""
        return int(self)

    @property
    def element_type(self) -> Optional["SqlType"]:
        """The element type of an array type, None for scalar types."""
        return _ARRAY_ELEMENTS.get(self)

    @property
    def is_array(self) -> bool:
        """True for array types."""
        return self in _ARRAY_ELEMENTS


_ARRAY_ELEMENTS = {
    SqlType.SMALLINT_ARRAY: SqlType.SMALLINT,
    SqlType.INTEGER_ARRAY: SqlType.INTEGER,
    SqlType.BIGINT_ARRAY: SqlType.BIGINT,
    SqlType.REAL_ARRAY: SqlType.REAL,
    SqlType.DOUBLE_PRECISION_ARRAY: SqlType.DOUBLE_PRECISION,
    SqlType.TEXT_ARRAY: SqlType.TEXT,
}

_NUMERIC_FORMATS = {
    SqlType.SMALLINT: struct.Struct(">h"),
    SqlType.INTEGER: struct.Struct(">i"),
    SqlType.BIGINT: struct.Struct(">q"),
    SqlType.REAL: struct.Struct(">f"),
    SqlType.DOUBLE_PRECISION: struct.Struct(">d"),
}


def _pack(fmt: struct.Struct, value: Any) -> bytes:
    try:
        return fmt.pack(value)
    except struct.error as error:
        raise ValueError(f"value {value!r} does not fit: {error}") from None


def _text_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"expected text, got {type(value).__name__}")


def _timestamp_value(value: _dt.datetime) -> int:
    if not isinstance(value, _dt.datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=_UTC)
    return (value - _TIMESTAMP_EPOCH) // _MICROSECOND


def _date_value(value: _dt.date) -> int:
    if isinstance(value, _dt.datetime):
        value = value.date()
    if not isinstance(value, _dt.date):
        raise TypeError(f"expected date, got {type(value).__name__}")
    return (value - _DATE_EPOCH).days


def _inet_bytes(value: Any) -> bytes:
    if isinstance(value, (str, bytes, int)):
        value = ipaddress.ip_address(value)
    if isinstance(value, ipaddress.IPv4Address):
        value = ipaddress.IPv6Address(b"\x00" * 10 + b"\xff\xff" + value.packed)
    if not isinstance(value, ipaddress.IPv6Address):
        raise TypeError(f"expected an IP address, got {type(value).__name__}")
    return bytes((INET6_ADDRESS_FAMILY, 128, 0, 16)) + value.packed


def _array_header(element: SqlType, count: int) -> bytes:
    return b"".join(
        _ARRAY_SIZE.pack(field) for field in (1, 0, element.oid, count, 1)
    )


class Parameter:
    """A single query parameter of a given SQL type.

    The value is held in its binary wire form in ``data``. Assigning to
    ``value`` re-encodes it. ``len()`` gives the size of the wire form in
    bytes; array parameters can be indexed to read back their elements.
    """

    def __init__(self, sql_type: SqlType, value: Any) -> None:
        self.sql_type = SqlType(sql_type)
        self._elements: Tuple[Any, ...] = ()
        self._data = b""
        self.value = value

    @property
    def oid(self) -> int:
        """Oid of the parameter's SQL type."""
        return self.sql_type.oid

    @property
    def data(self) -> bytes:
        """The value in binary wire form."""
        return self._data

    @property
    def value(self) -> Any:
        """The value the parameter was given."""
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self._data = self._encode(value)
        self._value = value

    def _encode(self, value: Any) -> bytes:
        sql_type = self.sql_type
        if sql_type.is_array:
            return self._encode_array(value)
        if sql_type is SqlType.BOOL:
            return bytes((1 if value else 0,))
        if sql_type in _NUMERIC_FORMATS:
            return _pack(_NUMERIC_FORMATS[sql_type], value)
        if sql_type is SqlType.TEXT:
            return _text_bytes(value)
        if sql_type is SqlType.BYTEA:
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise TypeError(f"expected bytes, got {type(value).__name__}")
            return bytes(value)
        if sql_type is SqlType.TIMESTAMPTZ:
            return _pack(_NUMERIC_FORMATS[SqlType.BIGINT], _timestamp_value(value))
        if sql_type is SqlType.DATE:
            return _pack(_NUMERIC_FORMATS[SqlType.INTEGER], _date_value(value))
        return _inet_bytes(value)

    def _encode_array(self, values: Sequence[Any]) -> bytes:
        if isinstance(values, (str, bytes, bytearray)):
            raise TypeError("an array parameter needs a sequence of elements")
        element = self.sql_type.element_type
        items = list(values)
        parts = [_array_header(element, len(items))]
        elements: List[Any] = []
        if element is SqlType.TEXT:
            for item in items:
                encoded = _text_bytes(item)
                parts.append(_ARRAY_SIZE.pack(len(encoded)))
                parts.append(encoded)
                elements.append(item if isinstance(item, str) else encoded)
        else:
            fmt = _NUMERIC_FORMATS[element]
            for item in items:
                encoded = _pack(fmt, item)
                parts.append(_ARRAY_SIZE.pack(fmt.size))
                parts.append(encoded)
                elements.append(fmt.unpack(encoded)[0])
        self._elements = tuple(elements)
        return b"".join(parts)

    def __getitem__(self, index: int) -> Any:
        """Element ``index`` of an array parameter as it was stored."""
        if not self.sql_type.is_array:
            raise TypeError(f"{self.sql_type.name} parameters are not indexable")
        return self._elements[index]

    def __len__(self) -> int:
        """Size in bytes of the binary wire form."""
        return len(self._data)

    def __repr__(self) -> str:
        return f"Parameter({self.sql_type.name}, {self._value!r})"


def _infer(argument: Any) -> Parameter:
    if isinstance(argument, Parameter):
        return argument
    if (
        isinstance(argument, tuple)
        and len(argument) == 2
        and isinstance(argument[0], SqlType)
    ):
        return Parameter(*argument)
    if isinstance(argument, bool):
        return Parameter(SqlType.BOOL, argument)
    if isinstance(argument, int):
        raise TypeError(
            "integers need an explicit SqlType: SMALLINT, INTEGER or BIGINT"
        )
    if isinstance(argument, float):
        return Parameter(SqlType.DOUBLE_PRECISION, argument)
    if isinstance(argument, str):
        return Parameter(SqlType.TEXT, argument)
    if isinstance(argument, (bytes, bytearray, memoryview)):
        return Parameter(SqlType.BYTEA, argument)
    if isinstance(argument, _dt.datetime):
        return Parameter(SqlType.TIMESTAMPTZ, argument)
    if isinstance(argument, _dt.date):
        return Parameter(SqlType.DATE, argument)
    if isinstance(argument, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return Parameter(SqlType.INET, argument)
    raise TypeError(f"cannot infer an SQL type for {type(argument).__name__}")


class Parameters:
    """An ordered set of parameters to tie to an SQL query.

    Each argument is a ``Parameter``, a ``(SqlType, value)`` pair, or a
    value whose SQL type is unambiguous (bool, float, str, bytes, datetime,
    date, IP address). After ``build()`` the ``raws`` and ``sizes`` lists
    hold what is sent to the server; null columns have a raw of None.
    """

    def __init__(self, *args: Any) -> None:
        self._columns = [_infer(argument) for argument in args]
        self._nulls = [False] * len(self._columns)
        self.oids: Tuple[int, ...] = tuple(column.oid for column in self._columns)
        self.formats: Tuple[int, ...] = (BINARY_FORMAT,) * len(self._columns)
        self.raws: List[Optional[bytes]] = [None] * len(self._columns)
        self.sizes: List[int] = [0] * len(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, column: int) -> Parameter:
        return self._columns[column]

    def set_null(self, column: int) -> None:
        """Mark a column (zero indexed) as null."""
        self._nulls[column] = True

    def is_null(self, column: int) -> bool:
        """True if the column (zero indexed) is null."""
        return self._nulls[column]

    def build(self) -> None:
        """Fill ``raws`` and ``sizes`` from the current column values."""
        self.raws = [
            None if null else column.data
            for column, null in zip(self._columns, self._nulls)
        ]
        self.sizes = [len(column) for column in self._columns]