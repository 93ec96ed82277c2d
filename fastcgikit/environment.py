"""Request environment built from FastCGI parameters and POST data."""

from __future__ import annotations

import bisect
import calendar
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from fastcgikit.http import (
    RequestMethod,
    atoi,
    decode_url_encoded,
    percent_escaped_to_bytes,
)
from fastcgikit.protocol import process_param_header

logger = logging.getLogger(__name__)

Pairs = list[tuple[str, str]]

_MULTIPART = "multipart/form-data"
_URL_ENCODED = "application/x-www-form-urlencoded"

_NAME_MARK = b'name="'
_FILENAME_MARK = b'filename="'
_CONTENT_TYPE_MARK = b"Content-Type: "
_BODY_MARK = b"\r\n\r\n"

_MONTHS = {
    name: number
    for number, name in enumerate(
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
         "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
        start=1,
    )
}
_HTTP_DATE = re.compile(
    rb"\s*[A-Za-z]{3}, *(\d{1,2}) +([A-Za-z]{3}) +(\d{4}) +"
    rb"(\d{1,2}):(\d{1,2}):(\d{1,2}) +GMT"
)


def _decode(data: bytes) -> str:
    """Decode UTF-8, yielding an empty string when the bytes are invalid."""
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Error in code conversion from utf8")
        return ""


def _insert(pairs: list, name: str, value: object) -> None:
    """Insert into a name-ordered list after any entries of equal name."""
    position = bisect.bisect_right(pairs, name, key=lambda pair: pair[0])
    pairs.insert(position, (name, value))


def _merge(pairs: list, new: list) -> list:
    return sorted(pairs + new, key=lambda pair: pair[0])


def _parse_http_date(value: bytes) -> int:
    match = _HTTP_DATE.match(value)
    if match is None or match.group(2).decode("ascii") not in _MONTHS:
        logger.warning("Unable to parse HTTP date %r", value)
        return 0
    day, month, year, hour, minute, second = match.groups()
    return calendar.timegm((
        int(year),
        _MONTHS[month.decode("ascii")],
        int(day),
        int(hour),
        int(minute),
        int(second),
        0,
        0,
        0,
    ))


def _split_path(value: bytes) -> list[str]:
    return [
        _decode(percent_escaped_to_bytes(segment))
        for segment in value.split(b"/")
        if segment
    ]


def _split_languages(value: bytes) -> list[str]:
    groups = value.split(b",")
    if groups and not groups[-1]:
        groups.pop()
    languages = []
    for group in groups:
        locality = group.split(b";", 1)[0].strip(b" ")
        languages.append(_decode(locality).replace("-", "_", 1))
    return languages


@dataclass
class File:
    """A file uploaded through a multipart POST."""

    filename: str = ""
    content_type: str = ""
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class Environment:
    """Everything known about an HTTP request.

    Multi-valued collections (``gets``, ``posts``, ``cookies``, ``files``) are
    lists of ``(name, value)`` pairs ordered by name, pairs of equal name in
    the order they arrived.
    """

    host: str = ""
    origin: str = ""
    user_agent: str = ""
    accept_content_types: str = ""
    accept_charsets: str = ""
    accept_languages: list[str] = field(default_factory=list)
    authorization: str = ""
    referer: str = ""
    content_type: str = ""
    boundary: bytes = b""
    root: str = ""
    script_name: str = ""
    request_method: RequestMethod = RequestMethod.ERROR
    request_uri: str = ""
    path_info: list[str] = field(default_factory=list)
    etag: int = 0
    keep_alive: int = 0
    content_length: int = 0
    server_address: str = ""
    remote_address: str = ""
    server_port: int = 0
    remote_port: int = 0
    if_modified_since: int = 0
    others: dict[str, str] = field(default_factory=dict)
    gets: Pairs = field(default_factory=list)
    posts: Pairs = field(default_factory=list)
    cookies: Pairs = field(default_factory=list)
    files: list[tuple[str, File]] = field(default_factory=list)
    _post_buffer: bytearray = field(
        default_factory=bytearray, init=False, repr=False, compare=False
    )

    def _handlers(self) -> dict[bytes, Callable[[bytes], None]]:
        def text(attribute: str) -> Callable[[bytes], None]:
            return lambda value: setattr(self, attribute, _decode(value))

        def number(attribute: str) -> Callable[[bytes], None]:
            return lambda value: setattr(self, attribute, atoi(value))

        return {
            b"HTTP_HOST": text("host"),
            b"PATH_INFO": self._set_path_info,
            b"HTTP_ACCEPT": text("accept_content_types"),
            b"HTTP_COOKIE": self._set_cookies,
            b"SERVER_ADDR": text("server_address"),
            b"REMOTE_ADDR": text("remote_address"),
            b"SERVER_PORT": number("server_port"),
            b"REMOTE_PORT": number("remote_port"),
            b"SCRIPT_NAME": text("script_name"),
            b"REQUEST_URI": text("request_uri"),
            b"HTTP_ORIGIN": text("origin"),
            b"HTTP_REFERER": text("referer"),
            b"CONTENT_TYPE": self._set_content_type,
            b"QUERY_STRING": self._set_gets,
            b"DOCUMENT_ROOT": text("root"),
            b"REQUEST_METHOD": self._set_request_method,
            b"CONTENT_LENGTH": number("content_length"),
            b"HTTP_USER_AGENT": text("user_agent"),
            b"HTTP_KEEP_ALIVE": number("keep_alive"),
            b"HTTP_IF_NONE_MATCH": number("etag"),
            b"HTTP_AUTHORIZATION": text("authorization"),
            b"HTTP_ACCEPT_CHARSET": text("accept_charsets"),
            b"HTTP_ACCEPT_LANGUAGE": self._set_accept_languages,
            b"HTTP_IF_MODIFIED_SINCE": self._set_if_modified_since,
        }

    def _set_path_info(self, value: bytes) -> None:
        self.path_info.extend(_split_path(value))

    def _set_cookies(self, value: bytes) -> None:
        self.cookies = _merge(self.cookies, decode_url_encoded(value, b"; "))

    def _set_gets(self, value: bytes) -> None:
        self.gets = _merge(self.gets, decode_url_encoded(value))

    def _set_content_type(self, value: bytes) -> None:
        main, semicolon, parameters = value.partition(b";")
        self.content_type = _decode(main)
        if semicolon:
            _, equals, boundary = parameters.partition(b"=")
            if equals:
                self.boundary = boundary

    def _set_request_method(self, value: bytes) -> None:
        self.request_method = RequestMethod.from_label(value)

    def _set_accept_languages(self, value: bytes) -> None:
        self.accept_languages.extend(_split_languages(value))

    def _set_if_modified_since(self, value: bytes) -> None:
        self.if_modified_since = _parse_http_date(value)

    def fill(self, data: Union[bytes, bytearray]) -> None:
        """Take in the name-value pairs of a PARAMS record body.

        Parsing stops at the first pair the data is too short to hold.
        """
        remaining = bytes(data)
        handlers = self._handlers()
        while True:
            parsed = process_param_header(remaining)
            if parsed is None:
                break
            name, value, end = parsed
            handler = handlers.get(name)
            if handler is not None:
                handler(value)
            else:
                self.others[_decode(name)] = _decode(value)
            remaining = remaining[end:]

    def fill_post_buffer(self, data: Union[bytes, bytearray]) -> None:
        """Append raw POST data to the buffer."""
        self._post_buffer.extend(data)

    def parse_post_buffer(self) -> bool:
        """Parse the buffered POST data by its content type.

        Returns True when the buffer is empty or was parsed, False when the
        content type is neither multipart nor URL encoded form data.
        """
        if not self._post_buffer:
            return True
        if self.content_type == _MULTIPART:
            self.parse_posts_multipart()
            return True
        if self.content_type == _URL_ENCODED:
            self.parse_posts_url_encoded()
            return True
        return False

    def parse_posts_multipart(self) -> None:
        """Parse the buffered POST data as multipart form data."""
        data = bytes(self._post_buffer)
        boundary = self.boundary
        length = len(data)

        name: Optional[tuple[int, int]] = None
        filename: Optional[tuple[int, int]] = None
        content_type: Optional[tuple[int, int]] = None
        body_start: Optional[int] = None
        start = 0
        state = "header"

        index = 0
        while index < length:
            byte = data[index]
            if state == "header":
                if name is None and data.startswith(_NAME_MARK, index):
                    index += len(_NAME_MARK)
                    start = index
                    state = "name"
                    continue
                if filename is None and data.startswith(_FILENAME_MARK, index):
                    index += len(_FILENAME_MARK)
                    start = index
                    state = "filename"
                    continue
                if content_type is None and data.startswith(
                    _CONTENT_TYPE_MARK, index
                ):
                    index += len(_CONTENT_TYPE_MARK)
                    start = index
                    state = "content_type"
                    continue
                if body_start is None and data.startswith(_BODY_MARK, index):
                    index += len(_BODY_MARK)
                    body_start = index
                    state = "body"
                    continue
            elif state == "name":
                if byte == 0x22:
                    name = (start, index)
                    state = "header"
            elif state == "filename":
                if byte == 0x22:
                    filename = (start, index)
                    state = "header"
            elif state == "content_type":
                if byte in (0x0D, 0x0A):
                    content_type = (start, index)
                    state = "header"
                    continue
            elif data.startswith(boundary, index):
                assert body_start is not None
                body_end = index - 2
                if body_end < body_start:
                    body_end = body_start
                elif (
                    body_end - body_start >= 2
                    and data[body_end - 2 : body_end] == b"\r\n"
                ):
                    body_end -= 2
                body = data[body_start:body_end]

                if name is not None:
                    field_name = _decode(data[name[0] : name[1]])
                    if content_type is not None:
                        upload = File(
                            content_type=_decode(
                                data[content_type[0] : content_type[1]]
                            ),
                            data=body,
                        )
                        if filename is not None:
                            upload.filename = _decode(
                                data[filename[0] : filename[1]]
                            )
                        _insert(self.files, field_name, upload)
                    else:
                        _insert(self.posts, field_name, _decode(body))

                state = "header"
                name = filename = content_type = None
                body_start = None
            index += 1

    def parse_posts_url_encoded(self) -> None:
        """Parse the buffered POST data as URL encoded form data."""
        self.posts = _merge(self.posts, decode_url_encoded(bytes(self._post_buffer)))