"""Byte-range aware response bodies for book resources and files."""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from cont_srv.core.errors import RangeNotSatisfiable
from cont_srv.core.resolver import ResolvedResource

log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 4 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 64 * 1024

_RANGE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total: int) -> str:
        return f"bytes {self.start}-{self.end}/{total}"


def parse_range(header: str | None, total: int) -> ByteRange | None:
    """Parse a single-range ``Range`` header against a resource length.

    Returns None when there is no header or it is malformed, in which case
    the whole resource is served.

    Raises:
        RangeNotSatisfiable: If the range starts at or beyond the end
    """
    if not header:
        return None
    match = _RANGE.match(header)
    if not match:
        return None

    start_str, end_str = match.groups()
    if not start_str:
        if not end_str:
            return None
        suffix = int(end_str)
        if suffix == 0 or total == 0:
            raise RangeNotSatisfiable(total)
        return ByteRange(max(total - suffix, 0), total - 1)

    start = int(start_str)
    end = int(end_str) if end_str else None
    if end is not None and end < start:
        return None
    if start >= total:
        raise RangeNotSatisfiable(total)
    return ByteRange(start, total - 1 if end is None else min(end, total - 1))


class ByteSource:
    """Something with a length that can yield byte slices."""

    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        raise NotImplementedError

    def iter_bytes(self, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class ArchiveSource(ByteSource):
    """A resolved book resource. Keeps the book's archive open until closed."""

    def __init__(self, resolved: ResolvedResource):
        self.resolved = resolved
        self.mime_type = resolved.mime_type
        self._book = resolved.book
        if not self._book.acquire():
            raise RuntimeError(f"Book {self._book.path} is closed")
        self._open = True

    @property
    def size(self) -> int:
        return self.resolved.size

    def iter_bytes(self, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        return self._book.archive.iter_entry(self.resolved.path, start, end, chunk_size)

    def close(self) -> None:
        if self._open:
            self._open = False
            self._book.release()


class BytesSource(ByteSource):
    """An in-memory body, such as a rendered reading view."""

    def __init__(self, data: bytes, mime_type: str):
        self.data = data
        self.mime_type = mime_type

    @property
    def size(self) -> int:
        return len(self.data)

    def iter_bytes(self, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        view = memoryview(self.data)
        for position in range(start, end + 1, chunk_size):
            yield bytes(view[position : min(position + chunk_size, end + 1)])


class FileSource(ByteSource):
    """A plain file on disk."""

    def __init__(self, path: Path, mime_type: str, size: int):
        self.path = path
        self.mime_type = mime_type
        self._size = size

    @property
    def size(self) -> int:
        return self._size

    def iter_bytes(self, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        handle = self.path.open("rb")
        return self._read(handle, start, end, chunk_size)

    @staticmethod
    def _read(handle, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        with handle:
            handle.seek(start)
            remaining = end - start + 1
            while remaining > 0:
                chunk = handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                yield chunk
                remaining -= len(chunk)


class StreamBody:
    """Iterator over response chunks that closes its source exactly once.

    Closing happens when the chunks run out, when the server closes the
    iterator, or when an abandoned iterator is collected after a client
    disconnect.
    """

    def __init__(self, source: ByteSource, chunks: Iterator[bytes]):
        self._source = source
        self._chunks = chunks
        self._closed = False

    def __iter__(self) -> "StreamBody":
        return self

    def __next__(self) -> bytes:
        if self._closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close_chunks = getattr(self._chunks, "close", None)
        if close_chunks is not None:
            close_chunks()
        self._source.close()

    def __del__(self) -> None:
        self.close()


@dataclass
class StreamResult:
    """Status, headers and body of a ranged response."""

    status: int
    media_type: str
    headers: dict[str, str] = field(default_factory=dict)
    body: StreamBody | None = None


def stream(
    source: ByteSource,
    range_header: str | None = None,
    head: bool = False,
    threshold: int = DEFAULT_THRESHOLD,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> StreamResult:
    """Build a 200, 206 or 416 response for a byte source.

    Bodies up to threshold bytes are produced as one chunk, longer ones
    in chunk_size pieces. The source is closed once the body is done, or
    immediately when there is no body to send.
    """
    total = source.size
    headers = {"Accept-Ranges": "bytes"}

    try:
        byte_range = parse_range(range_header, total)
    except RangeNotSatisfiable:
        log.debug("Unsatisfiable range %r for length %d", range_header, total)
        source.close()
        headers["Content-Range"] = f"bytes */{total}"
        headers["Content-Length"] = "0"
        return StreamResult(416, source.mime_type, headers)

    if byte_range is None:
        status, start, end = 200, 0, total - 1
    else:
        status, start, end = 206, byte_range.start, byte_range.end
        headers["Content-Range"] = byte_range.content_range(total)

    length = max(end - start + 1, 0)
    headers["Content-Length"] = str(length)

    if head or length == 0:
        source.close()
        return StreamResult(status, source.mime_type, headers)

    step = length if length <= threshold else chunk_size
    try:
        chunks = source.iter_bytes(start, end, step)
    except BaseException:
        source.close()
        raise
    return StreamResult(status, source.mime_type, headers, StreamBody(source, chunks))
