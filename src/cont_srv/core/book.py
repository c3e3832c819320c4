"""An opened EPUB: archive, package structure and table of contents."""

import logging
import threading
from pathlib import Path

from cont_srv.core.archive import Archive
from cont_srv.core.navigation import build_toc
from cont_srv.core.package_parser import parse_package
from cont_srv.models.epub import BookStructure, TocTree

log = logging.getLogger(__name__)


class Book:
    """A parsed book sharing one open archive between concurrent readers.

    The mapping never changes once built. Readers hold a reference while
    they use the archive; a retired book closes its archive when the last
    reference is released.
    """

    def __init__(
        self,
        path: Path,
        archive: Archive,
        structure: BookStructure,
        toc: TocTree,
        signature: tuple[int, int] | None = None,
    ):
        self.path = path
        self.archive = archive
        self.structure = structure
        self.toc = toc
        self.signature = signature
        self._lock = threading.Lock()
        self._readers = 0
        self._retired = False

    @classmethod
    def open(cls, path: Path, signature: tuple[int, int] | None = None) -> "Book":
        """Open and parse an EPUB file.

        Raises:
            ArchiveIOError, NotAnArchive: If the container cannot be opened
            MissingRootFile, MalformedPackage: If the package is unusable
        """
        archive = Archive.open(path)
        try:
            structure = parse_package(archive)
            toc = build_toc(archive, structure)
        except BaseException:
            archive.close()
            raise
        log.info(
            "Opened %s: %d resources, %d spine items, toc from %s",
            path,
            len(structure.resources),
            len(structure.spine),
            toc.source.value,
        )
        return cls(path, archive, structure, toc, signature)

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def retired(self) -> bool:
        return self._retired

    def acquire(self) -> bool:
        """Take a reader reference. Returns False if the archive is gone."""
        with self._lock:
            if self.archive.closed:
                return False
            self._readers += 1
            return True

    def release(self) -> None:
        """Drop a reader reference, closing the archive if retired and idle."""
        with self._lock:
            self._readers -= 1
            close = self._retired and self._readers <= 0
        if close:
            self._close()

    def retire(self) -> None:
        """Mark the book evicted. The archive closes once no reader remains."""
        with self._lock:
            self._retired = True
            close = self._readers <= 0
        if close:
            self._close()

    def _close(self) -> None:
        log.debug("Closing archive %s", self.path)
        self.archive.close()
