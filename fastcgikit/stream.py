"""Output stream that packages written data into FastCGI records."""

from __future__ import annotations

from typing import BinaryIO, Callable, Optional

from fastcgikit.protocol import (
    HEADER_SIZE,
    MAX_CONTENT_LENGTH,
    VERSION,
    Header,
    RecordType,
    RequestId,
    get_record_size,
)

SendFunction = Callable[[object, bytes], None]

BUFFER_SIZE = 8192
"""Number of characters held before the buffer is turned into records."""


class FcgiStream:
    """A text stream whose output leaves as FastCGI OUT or ERR records.

    Written text is buffered and, when the buffer overflows or the stream is
    flushed, encoded as UTF-8 and handed to ``send`` as complete records
    (header, content and padding). Raw bytes can bypass the buffer and the
    encoding with :meth:`dump` and :meth:`dump_stream`.
    """

    def __init__(
        self,
        request_id: Optional[RequestId] = None,
        record_type: RecordType = RecordType.OUT,
        send: Optional[SendFunction] = None,
    ) -> None:
        self._request_id = request_id if request_id is not None else RequestId()
        self._record_type = record_type
        self._send = send
        self._buffer: list[str] = []
        self._buffered = 0
        self._closed = False

    def configure(
        self,
        request_id: RequestId,
        record_type: RecordType,
        send: SendFunction,
    ) -> None:
        """Set the request, the record type (OUT or ERR) and the send function."""
        self._request_id = request_id
        self._record_type = record_type
        self._send = send

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, text: str) -> int:
        """Buffer ``text`` for output and return the number of characters taken."""
        if self._closed:
            raise ValueError("write to a closed FcgiStream")
        if not isinstance(text, str):
            raise TypeError(f"write() needs str, not {type(text).__name__}")
        remaining = text
        while remaining:
            if self._buffered >= BUFFER_SIZE:
                self.flush()
            space = BUFFER_SIZE - self._buffered
            piece, remaining = remaining[:space], remaining[space:]
            self._buffer.append(piece)
            self._buffered += len(piece)
        return len(text)

    def flush(self) -> None:
        """Encode, package and send everything in the buffer."""
        if not self._buffered:
            return
        text = "".join(self._buffer)
        self._buffer.clear()
        self._buffered = 0
        try:
            encoded = text.encode("utf-8")
        except UnicodeEncodeError as error:
            raise ValueError(f"stream code conversion failed: {error}") from error
        self._send_records(encoded)

    def dump(self, data: bytes) -> None:
        """Send raw bytes straight out, after whatever text is buffered."""
        if self._closed:
            raise ValueError("dump to a closed FcgiStream")
        self.flush()
        self._send_records(bytes(data))

    def dump_stream(self, stream: BinaryIO) -> None:
        """Send the contents of a binary stream until it is exhausted."""
        if self._closed:
            raise ValueError("dump to a closed FcgiStream")
        self.flush()
        while True:
            chunk = stream.read(MAX_CONTENT_LENGTH)
            if not chunk:
                break
            self._send_record(bytes(chunk))

    def close(self) -> None:
        """Flush the buffer and refuse any further output."""
        if self._closed:
            return
        try:
            self.flush()
        finally:
            self._closed = True

    def __enter__(self) -> FcgiStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _send_records(self, data: bytes) -> None:
        for start in range(0, len(data), MAX_CONTENT_LENGTH):
            self._send_record(data[start : start + MAX_CONTENT_LENGTH])

    def _send_record(self, content: bytes) -> None:
        if self._send is None:
            raise RuntimeError("FcgiStream has no send function configured")
        record_size = get_record_size(len(content))
        padding = record_size - len(content) - HEADER_SIZE
        header = Header(
            version=VERSION,
            type=self._record_type,
            fcgi_id=self._request_id.id,
            content_length=len(content),
            padding_length=padding,
        )
        self._send(self._request_id.socket, header.pack() + content + bytes(padding))