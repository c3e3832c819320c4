"""Book cache with single-flight builds and mtime/size invalidation."""

import copy
import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future
from contextlib import contextmanager
from pathlib import Path

from cont_srv.core.book import Book
from cont_srv.core.errors import ArchiveIOError, ContentServerError, NotFound

log = logging.getLogger(__name__)

Signature = tuple[int, int]


def file_signature(path: Path) -> Signature:
    """Return (mtime_ns, size) used to detect a changed book file."""
    try:
        stat = path.stat()
    except (FileNotFoundError, NotADirectoryError):
        raise NotFound(f"File not found: {path}") from None
    except OSError as e:
        raise ArchiveIOError(f"Cannot stat {path}: {e}") from e
    if not path.is_file():
        raise NotFound(f"Not a file: {path}")
    return stat.st_mtime_ns, stat.st_size


class BookCache:
    """Keeps parsed books open between requests.

    At most one build runs per path; concurrent callers wait for it.
    Books are dropped least-recently-used first, or when their file
    changes. A dropped book stays usable by readers that still hold a
    reference, and its archive closes after the last one lets go.
    """

    def __init__(
        self,
        capacity: int = 10,
        builder: Callable[[Path, Signature], Book] | None = None,
    ):
        self.capacity = capacity
        self._builder = builder or Book.open
        self._lock = threading.Lock()
        self._books: OrderedDict[str, Book] = OrderedDict()
        self._inflight: dict[str, Future] = {}
        self._failures: dict[str, tuple[Signature, Exception]] = {}
        self.parse_count = 0

    def __len__(self) -> int:
        return len(self._books)

    def __contains__(self, path: Path) -> bool:
        return self._key(path) in self._books

    @staticmethod
    def _key(path: Path) -> str:
        return str(Path(path).resolve())

    def get_or_build(self, path: Path) -> Book:
        """Return the book for path with a reader reference already held.

        The caller must call ``book.release()`` when done, or use
        :meth:`open` instead.

        Raises:
            NotFound: If the file does not exist
            ContentServerError: If the book cannot be opened; format errors
                are remembered and re-raised until the file changes
        """
        path = Path(path)
        key = self._key(path)
        signature = file_signature(path)

        while True:
            stale: list[Book] = []
            with self._lock:
                book = self._books.get(key)
                if book is not None:
                    if book.signature == signature and book.acquire():
                        self._books.move_to_end(key)
                        return book
                    log.info("Book %s changed on disk, rebuilding", path)
                    stale.append(self._books.pop(key))

                failure = self._failures.get(key)
                if failure is not None:
                    if failure[0] == signature:
                        # Raise a copy so the stored exception keeps no traceback
                        raise copy.copy(failure[1])
                    del self._failures[key]

                future = self._inflight.get(key)
                owner = future is None
                if owner:
                    future = Future()
                    self._inflight[key] = future
                    self.parse_count += 1

            for old in stale:
                old.retire()

            if owner:
                return self._build(key, path, signature, future)

            # Another request is parsing this book; wait and retry the lookup
            future.result()

    def _build(self, key: str, path: Path, signature: Signature, future: Future) -> Book:
        try:
            book = self._builder(path, signature)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
                if isinstance(e, ContentServerError) and not isinstance(e, ArchiveIOError):
                    self._failures[key] = (signature, copy.copy(e))
            future.set_exception(e)
            raise

        evicted: list[Book] = []
        with self._lock:
            self._inflight.pop(key, None)
            book.acquire()
            self._books[key] = book
            self._books.move_to_end(key)
            while len(self._books) > self.capacity:
                old_key, old = self._books.popitem(last=False)
                log.debug("Evicting %s from book cache", old_key)
                evicted.append(old)

        for old in evicted:
            old.retire()
        future.set_result(book)
        return book

    @contextmanager
    def open(self, path: Path):
        """Context manager holding a reader reference to the book at path."""
        book = self.get_or_build(path)
        try:
            yield book
        finally:
            book.release()

    def invalidate(self, path: Path) -> bool:
        """Drop a book and any remembered failure. Returns True if cached."""
        key = self._key(path)
        with self._lock:
            book = self._books.pop(key, None)
            self._failures.pop(key, None)
        if book is not None:
            book.retire()
        return book is not None

    def clear(self) -> int:
        """Drop every cached book. Returns the number dropped."""
        with self._lock:
            books = list(self._books.values())
            self._books.clear()
            self._failures.clear()
        for book in books:
            book.retire()
        return len(books)

    def list_cached(self) -> list[tuple[str, int]]:
        """List cached books as (path, active readers)."""
        with self._lock:
            return [(key, book.readers) for key, book in self._books.items()]
