"""Elements of the HTTP protocol: request methods and request data decoding."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)

Text = Union[str, bytes, bytearray]

_HEX_LETTERS = range(ord("a"), ord("f") + 1)
_DIGITS = range(ord("0"), ord("9") + 1)


class RequestMethod(Enum):
    """HTTP request methods; ERROR marks a method that was not recognised."""

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

    @property
    def label(self) -> str:
        """The method as it appears in a request."""
        return self.name

    @classmethod
    def from_label(cls, label: Text) -> RequestMethod:
        """Return the method named exactly by ``label``, or ERROR."""
        if isinstance(label, (bytes, bytearray)):
            label = bytes(label).decode("latin-1")
        member = cls.__members__.get(label)
        return member if member is not None else cls.ERROR


def _as_str(data: Text) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("latin-1")
    return data


def _to_text(data: bytes) -> str:
    """Decode UTF-8, yielding an empty string when the bytes are invalid."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Error in code conversion from utf8")
        return ""


def atoi(data: Text) -> int:
    """Read a signed decimal integer from the start of ``data``.

    Reading stops at the first character that is not a digit; no digits
    at all gives 0.
    """
    text = _as_str(data)
    negative = text.startswith("-")
    if negative:
        text = text[1:]
    result = 0
    for char in text:
        if ord(char) not in _DIGITS:
            break
        result = result * 10 + (ord(char) & 0x0F)
    return -result if negative else result


def atof(data: Text) -> float:
    """Read a signed decimal number from the start of ``data``.

    Reading stops at the first character that is neither a digit nor a
    point; every point restarts the fractional place at tenths.
    """
    text = _as_str(data)
    if not text:
        return 0.0
    negative = text.startswith("-")
    if negative:
        text = text[1:]
    result = 0.0
    multiplier = 0.0
    for char in text:
        if ord(char) in _DIGITS:
            digit = ord(char) & 0x0F
            if multiplier == 0:
                result = result * 10 + digit
            else:
                result += digit * multiplier
                multiplier *= 0.1
        elif char == ".":
            multiplier = 0.1
        else:
            break
    return -result if negative else result


def _nibble(byte: int) -> int:
    lowered = byte | 0x20
    if lowered in _HEX_LETTERS:
        return lowered - 0x57
    if byte in _DIGITS:
        return byte & 0x0F
    return 0


def percent_escaped_to_bytes(data: Union[bytes, bytearray]) -> bytes:
    """Decode percent escapes and '+' (as space) in URL encoded bytes.

    An escape cut short by the end of the data is dropped; a character that
    is not a hex digit counts as zero.
    """
    output = bytearray()
    state = 0
    current = 0
    for byte in bytes(data):
        if state == 0:
            if byte == 0x25:  # '%'
                current = 0
                state = 1
            elif byte == 0x2B:  # '+'
                output.append(0x20)
            else:
                output.append(byte)
        elif state == 1:
            current = _nibble(byte) << 4
            state = 2
        else:
            output.append(current | _nibble(byte))
            state = 0
    return bytes(output)


def decode_url_encoded(
    data: Union[bytes, bytearray],
    field_separator: Union[bytes, str] = b"&",
) -> list[tuple[str, str]]:
    """Decode ``name=value`` pairs separated by ``field_separator``.

    Names and values are unescaped and decoded as UTF-8. The pairs come back
    ordered by name, pairs with equal names in the order they appeared. A
    field without '=' is not a pair of its own: its text becomes the start
    of the next name.
    """
    data = bytes(data)
    separator = (
        field_separator.encode("utf-8")
        if isinstance(field_separator, str)
        else bytes(field_separator)
    )
    if not separator:
        raise ValueError("field separator must not be empty")

    pairs: list[tuple[str, str]] = []
    end = len(data)
    name_start = 0
    value_start = 0
    name: str | None = None
    position = 0
    while position <= end:
        if name is not None:
            if position == end or data.startswith(separator, position):
                value = _to_text(percent_escaped_to_bytes(data[value_start:position]))
                pairs.append((name, value))
                position += len(separator)
                name_start = position
                name = None
                continue
        elif position != end and data[position] == 0x3D:  # '='
            name = _to_text(percent_escaped_to_bytes(data[name_start:position]))
            value_start = position + 1
        position += 1

    pairs.sort(key=lambda pair: pair[0])
    return pairs