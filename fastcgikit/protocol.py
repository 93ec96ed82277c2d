"""Data structures and constants of the FastCGI protocol, version 1."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

VERSION = 1
"""The version of the FastCGI protocol implemented here."""

CHUNK_SIZE = 8
"""Every FastCGI record is padded to a multiple of this many bytes."""

BAD_FCGI_ID = 0xFFFF
"""A FastCGI request id that marks a bad or special request."""

MAX_CONTENT_LENGTH = 0xFFFF
"""The largest content length a single record can carry."""

HEADER_SIZE = 8
"""Size in bytes of a record header."""

_HEADER = struct.Struct(">BBHHBB")
_BEGIN_REQUEST = struct.Struct(">HB5x")
_UNKNOWN_TYPE = struct.Struct(">B7x")
_END_REQUEST = struct.Struct(">iB3x")
_LONG_LENGTH = struct.Struct(">I")


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


def _as_enum(enum_type: type[IntEnum], value: int) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        return value


@dataclass(frozen=True, order=True)
class RequestId:
    """Identifies a request by the socket it arrived on and its FastCGI id.

    Instances order first by socket and then by id, so all requests on one
    socket sort next to each other.
    """

    socket: Any = -1
    id: int = BAD_FCGI_ID


@dataclass
class Header:
    """The eight byte header that starts every FastCGI record."""

    version: int = VERSION
    type: Any = RecordType.UNKNOWN_TYPE
    fcgi_id: int = 0
    content_length: int = 0
    padding_length: int = 0
    reserved: int = 0

    def pack(self) -> bytes:
        """Return the header in wire format."""
        return _HEADER.pack(
            self.version,
            int(self.type),
            self.fcgi_id,
            self.content_length,
            self.padding_length,
            self.reserved,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Header:
        """Read a header from the first eight bytes of ``data``.

        A record type this module does not know is kept as a plain int.
        """
        if len(data) < HEADER_SIZE:
            raise ValueError(
                f"header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        version, rtype, fcgi_id, length, padding, reserved = _HEADER.unpack_from(
            bytes(data[:HEADER_SIZE])
        )
        return cls(
            version=version,
            type=_as_enum(RecordType, rtype),
            fcgi_id=fcgi_id,
            content_length=length,
            padding_length=padding,
            reserved=reserved,
        )


@dataclass
class BeginRequest:
    """Body of a BEGIN_REQUEST record."""

    KEEP_CONN_BIT = 1

    role: Any = Role.RESPONDER
    flags: int = 0

    def kill(self) -> bool:
        """True when the connection should be closed once the request is done."""
        return not (self.flags & self.KEEP_CONN_BIT)

    @classmethod
    def unpack(cls, data: bytes) -> BeginRequest:
        """Read the body from the first eight bytes of ``data``."""
        if len(data) < _BEGIN_REQUEST.size:
            raise ValueError(
                f"begin request body needs {_BEGIN_REQUEST.size} bytes, "
                f"got {len(data)}"
            )
        role, flags = _BEGIN_REQUEST.unpack_from(bytes(data[: _BEGIN_REQUEST.size]))
        return cls(role=_as_enum(Role, role), flags=flags)


@dataclass
class UnknownType:
    """Body of an UNKNOWN_TYPE record, the reply to an unrecognised record."""

    type: int

    def pack(self) -> bytes:
        """Return the body in wire format."""
        return _UNKNOWN_TYPE.pack(int(self.type))


@dataclass
class EndRequest:
    """Body of an END_REQUEST record."""

    app_status: int = 0
    protocol_status: ProtocolStatus = ProtocolStatus.REQUEST_COMPLETE

    def pack(self) -> bytes:
        """Return the body in wire format."""
        return _END_REQUEST.pack(self.app_status, int(self.protocol_status))


def _read_length(data: bytes, offset: int) -> tuple[int, int] | None:
    if offset >= len(data):
        return None
    first = data[offset]
    if first & 0x80 == 0:
        return first, offset + 1
    if offset + 4 > len(data):
        return None
    (length,) = _LONG_LENGTH.unpack_from(bytes(data[offset : offset + 4]))
    return length & 0x7FFFFFFF, offset + 4


def process_param_header(data: bytes) -> tuple[bytes, bytes, int] | None:
    """Parse one name-value pair from the start of a PARAMS record body.

    Returns ``(name, value, end)`` where ``end`` is the offset just past the
    value, or None when ``data`` is too short to hold the whole pair.
    """
    name_length = _read_length(data, 0)
    if name_length is None:
        return None
    name_size, offset = name_length
    value_length = _read_length(data, offset)
    if value_length is None:
        return None
    value_size, offset = value_length
    name_end = offset + name_size
    end = name_end + value_size
    if end > len(data):
        return None
    return bytes(data[offset:name_end]), bytes(data[name_end:end]), end


def get_record_size(content_length: int) -> int:
    """Size of a whole record (header, content and padding) for this content.

    Content longer than 0xffff bytes is taken as 0xffff, the most one record
    can carry.
    """
    content = min(content_length, MAX_CONTENT_LENGTH)
    total = content + HEADER_SIZE
    return (total + CHUNK_SIZE - 1) // CHUNK_SIZE * CHUNK_SIZE


def management_reply(name: bytes, value: bytes) -> bytes:
    """Build a complete GET_VALUES_RESULT record for one name-value pair.

    Name and value lengths are single bytes, so each is limited to 0-127.
    """
    for label, item in (("name", name), ("value", value)):
        if len(item) > 127:
            raise ValueError(f"management reply {label} longer than 127 bytes")
    body = bytes([len(name), len(value)]) + bytes(name) + bytes(value)
    record_size = get_record_size(len(body))
    padding = record_size - HEADER_SIZE - len(body)
    header = Header(
        version=VERSION,
        type=RecordType.GET_VALUES_RESULT,
        fcgi_id=0,
        content_length=len(body),
        padding_length=padding,
    )
    return header.pack() + body + bytes(padding)