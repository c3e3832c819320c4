"""Exception types raised by the content engine."""


class ContentServerError(Exception):
    """Base class for all content server errors."""


class ConfigError(ContentServerError):
    """Invalid server configuration."""


class ArchiveError(ContentServerError):
    """Base class for errors opening or reading a book archive."""


class ArchiveIOError(ArchiveError, OSError):
    """The archive file could not be read."""


class NotAnArchive(ArchiveError):
    """The file is not a zip container."""


class EntryNotFound(ArchiveError):
    """The requested entry does not exist in the archive."""


class CorruptEntry(ArchiveError):
    """The entry exists but its bytes are damaged."""


class BookFormatError(ContentServerError):
    """Base class for structurally invalid EPUB packages."""


class MissingRootFile(BookFormatError):
    """The container has no usable pointer to its package document."""


class MalformedPackage(BookFormatError):
    """The package document is unparsable or inconsistent."""


class NotFound(ContentServerError):
    """A chapter, resource or file does not exist."""


class OutOfBookAccess(ContentServerError):
    """A requested path tries to escape the served book or directory."""


class InvalidBookId(ContentServerError):
    """A book identifier in a URL cannot be decoded."""


class RangeNotSatisfiable(ContentServerError):
    """The requested byte range starts beyond the end of the resource."""

    def __init__(self, total: int):
        super().__init__(f"Range not satisfiable for length {total}")
        self.total = total
