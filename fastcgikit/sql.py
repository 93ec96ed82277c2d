"""SQL query parameters encoded in the PostgreSQL binary wire format."""

from __future__ import annotations

import ipaddress
import numbers
import struct
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Optional, Union

_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
_EPOCH_DATE = date(2000, 1, 1)
_MICROSECOND = timedelta(microseconds=1)

_INET_FAMILY = 3
"""Address family byte the server uses for IPv6 addresses."""

_ARRAY_HEADER = struct.Struct(">iiiii")
_LENGTH = struct.Struct(">i")

BINARY_FORMAT = 1
"""Format code of a parameter sent in binary form."""


class SqlType(IntEnum):
    """SQL data types a parameter can carry, valued by their type oid."""

    BOOL = 16
    BYTEA = 17
    BIGINT = 20
    SMALLINT = 21
    INTEGER = 23
    TEXT = 25
    REAL = 700
    DOUBLE_PRECISION = 701
    INET = 869
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
        """The type oid the server knows this type by."""
        return int(self)

    @property
    def element_type(self) -> Optional[SqlType]:
        """For an array type, the type of its elements; otherwise None."""
        return _ARRAY_ELEMENTS.get(self)

    @property
    def is_array(self) -> bool:
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

_INTEGER_TYPES = {SqlType.SMALLINT, SqlType.INTEGER, SqlType.BIGINT}


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _pack_number(sql_type: SqlType, value: Any) -> bytes:
    if sql_type in _INTEGER_TYPES:
        if not _is_integer(value):
            raise TypeError(f"{sql_type.name} needs an int, not {type(value).__name__}")
    elif not _is_real(value):
        raise TypeError(f"{sql_type.name} needs a number, not {type(value).__name__}")
    try:
        return _NUMERIC_FORMATS[sql_type].pack(value)
    except (struct.error, OverflowError) as error:
        raise ValueError(f"{value!r} does not fit in {sql_type.name}") from error


def _text_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        try:
            return value.encode("utf-8")
        except UnicodeEncodeError as error:
            raise ValueError(f"text is not encodable as UTF-8: {error}") from error
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"TEXT needs str or bytes, not {type(value).__name__}")


def _inet_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("ascii")
    if isinstance(value, str):
        value = ipaddress.ip_address(value)
    if isinstance(value, ipaddress.IPv4Address):
        value = ipaddress.IPv6Address("::ffff:" + str(value))
    if not isinstance(value, ipaddress.IPv6Address):
        raise TypeError(f"INET needs an IP address, not {type(value).__name__}")
    return bytes([_INET_FAMILY, 128, 0, 16]) + value.packed


def _timestamp_bytes(value: Any) -> bytes:
    if not isinstance(value, datetime):
        raise TypeError(f"TIMESTAMPTZ needs a datetime, not {type(value).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return _pack_number(SqlType.BIGINT, (value - _EPOCH) // _MICROSECOND)


def _date_bytes(value: Any) -> bytes:
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise TypeError(f"DATE needs a date, not {type(value).__name__}")
    return _pack_number(SqlType.INTEGER, (value - _EPOCH_DATE).days)


def _encode_scalar(sql_type: SqlType, value: Any) -> bytes:
    if sql_type is SqlType.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"BOOL needs a bool, not {type(value).__name__}")
        return b"\x01" if value else b"\x00"
    if sql_type in _NUMERIC_FORMATS:
        return _pack_number(sql_type, value)
    if sql_type is SqlType.TEXT:
        return _text_bytes(value)
    if sql_type is SqlType.BYTEA:
        if isinstance(value, str):
            raise TypeError("BYTEA needs bytes, not str")
        return bytes(value)
    if sql_type is SqlType.TIMESTAMPTZ:
        return _timestamp_bytes(value)
    if sql_type is SqlType.DATE:
        return _date_bytes(value)
    if sql_type is SqlType.INET:
        return _inet_bytes(value)
    raise ValueError(f"{sql_type.name} is not a scalar type")


def _encode_array(sql_type: SqlType, values: Any) -> bytes:
    element_type = _ARRAY_ELEMENTS[sql_type]
    if isinstance(values, (str, bytes, bytearray)):
        raise TypeError(f"{sql_type.name} needs a sequence of elements")
    elements = [_encode_scalar(element_type, value) for value in values]
    parts = [_ARRAY_HEADER.pack(1, 0, element_type.oid, len(elements), 1)]
    for element in elements:
        parts.append(_LENGTH.pack(len(element)))
        parts.append(element)
    return b"".join(parts)


def _decode_array(sql_type: SqlType, data: bytes) -> list:
    element_type = _ARRAY_ELEMENTS[sql_type]
    count = _ARRAY_HEADER.unpack_from(data)[3]
    offset = _ARRAY_HEADER.size
    elements = []
    for _ in range(count):
        (length,) = _LENGTH.unpack_from(data, offset)
        offset += _LENGTH.size
        raw = data[offset : offset + length]
        offset += length
        if element_type is SqlType.TEXT:
            elements.append(raw.decode("utf-8"))
        else:
            elements.append(_NUMERIC_FORMATS[element_type].unpack(raw)[0])
    return elements


def _infer_array(values: Sequence) -> SqlType:
    if not values:
        raise ValueError("cannot infer the type of an empty array")
    if all(isinstance(value, (str, bytes, bytearray)) for value in values):
        return SqlType.TEXT_ARRAY
    if all(_is_integer(value) for value in values):
        return SqlType.BIGINT_ARRAY
    if all(_is_real(value) for value in values):
        return SqlType.DOUBLE_PRECISION_ARRAY
    raise TypeError("cannot infer an array type from these elements")


def _infer(value: Any) -> SqlType:
    if isinstance(value, bool):
        return SqlType.BOOL
    if isinstance(value, int):
        return SqlType.BIGINT
    if isinstance(value, float):
        return SqlType.DOUBLE_PRECISION
    if isinstance(value, str):
        return SqlType.TEXT
    if isinstance(value, (bytes, bytearray, memoryview)):
        return SqlType.BYTEA
    if isinstance(value, datetime):
        return SqlType.TIMESTAMPTZ
    if isinstance(value, date):
        return SqlType.DATE
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return SqlType.INET
    if isinstance(value, (list, tuple)):
        return _infer_array(value)
    raise TypeError(f"cannot infer an SQL type for {type(value).__name__}")


@dataclass(frozen=True)
class Parameter:
    """One query parameter: a value and the SQL type it is sent as.

    Without an explicit type one is inferred: bool, int (BIGINT), float
    (DOUBLE_PRECISION), str (TEXT), bytes (BYTEA), datetime (TIMESTAMPTZ),
    date (DATE), IP addresses (INET) and lists of int, float or str.
    The value is encoded, and checked, when the parameter is made.
    """

    value: Any
    sql_type: Optional[SqlType] = None
    _data: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        sql_type = self.sql_type if self.sql_type is not None else _infer(self.value)
        sql_type = SqlType(sql_type)
        object.__setattr__(self, "sql_type", sql_type)
        if sql_type.is_array:
            data = _encode_array(sql_type, self.value)
        else:
            data = _encode_scalar(sql_type, self.value)
        object.__setattr__(self, "_data", data)

    @property
    def oid(self) -> int:
        assert self.sql_type is not None
        return self.sql_type.oid

    def encode(self) -> bytes:
        """The value in the binary form the server expects."""
        return self._data

    def __getitem__(self, index: Union[int, slice]) -> Any:
        """Read an element back out of an encoded array."""
        assert self.sql_type is not None
        if not self.sql_type.is_array:
            raise TypeError(f"{self.sql_type.name} parameter is not an array")
        return _decode_array(self.sql_type, self._data)[index]

    def __len__(self) -> int:
        """Size in bytes of the encoded value."""
        return len(self._data)


@dataclass(frozen=True)
class BuiltParameters:
    """The arrays a parameterised query is sent with."""

    oids: tuple[int, ...]
    raws: tuple[Optional[bytes], ...]
    sizes: tuple[int, ...]
    formats: tuple[int, ...]


class Parameters(Sequence):
    """An ordered set of parameters to tie to an SQL query.

    Each argument is either a :class:`Parameter` or a plain value whose
    type is inferred. Any column may be marked null.
    """

    def __init__(self, *values: Any) -> None:
        self._parameters = [
            value if isinstance(value, Parameter) else Parameter(value)
            for value in values
        ]
        self._nulls = [False] * len(self._parameters)
        self.built: Optional[BuiltParameters] = None

    @property
    def oids(self) -> tuple[int, ...]:
        return tuple(parameter.oid for parameter in self._parameters)

    @property
    def formats(self) -> tuple[int, ...]:
        return (BINARY_FORMAT,) * len(self._parameters)

    def build(self) -> BuiltParameters:
        """Gather oids, raw data, sizes and formats for sending."""
        self.built = BuiltParameters(
            oids=self.oids,
            raws=tuple(
                None if null else parameter.encode()
                for parameter, null in zip(self._parameters, self._nulls)
            ),
            sizes=tuple(len(parameter) for parameter in self._parameters),
            formats=self.formats,
        )
        return self.built

    def set_null(self, column: int) -> None:
        """Send the zero-indexed column as null."""
        self._nulls[column] = True

    def is_null(self, column: int) -> bool:
        """True when the zero-indexed column is to be sent as null."""
        return self._nulls[column]

    def __len__(self) -> int:
        return len(self._parameters)

    def __getitem__(self, column):  # type: ignore[override]
        return self._parameters[column]