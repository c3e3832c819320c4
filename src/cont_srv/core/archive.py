"""Random-access reader for zip containers."""

import logging
import mmap
import struct
import threading
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from cont_srv.core.errors import (
    ArchiveIOError,
    CorruptEntry,
    EntryNotFound,
    NotAnArchive,
)

log = logging.getLogger(__name__)

# Local file header: signature, version, flags, method, time, date,
# crc, compressed size, size, name length, extra length
_LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
_LOCAL_HEADER_SIG = b"PK\x03\x04"


@dataclass(frozen=True)
class EntryInfo:
    """Central directory information for one archive member."""

    name: str
    header_offset: int
    compressed_size: int
    size: int
    compress_type: int
    crc: int
    encrypted: bool = False

    @property
    def stored(self) -> bool:
        return self.compress_type == zipfile.ZIP_STORED


def is_safe_member_name(name: str) -> bool:
    """Reject absolute, drive-qualified and traversing member names."""
    if not name or name.startswith(("/", "\\")):
        return False
    if len(name) > 1 and name[1] == ":":
        return False
    return ".." not in name.replace("\\", "/").split("/")


class Archive:
    """An opened zip container with random access to its entries.

    Stored entries are sliced straight out of a read-only memory map.
    Compressed entries are inflated once and the result kept until the
    archive is closed.
    """

    def __init__(self, path: Path, handle, view: mmap.mmap, zf: zipfile.ZipFile):
        self.path = path
        self._handle = handle
        self._view = view
        self._zf = zf
        self._entries: dict[str, EntryInfo] = {}
        self._infos: dict[str, zipfile.ZipInfo] = {}
        self._data_offsets: dict[str, int] = {}
        self._inflated: dict[str, bytes] = {}
        self._guard = threading.Lock()
        self._entry_locks: dict[str, threading.Lock] = {}
        self.closed = False

        for info in zf.infolist():
            if info.is_dir():
                continue
            if not is_safe_member_name(info.filename):
                log.warning("Ignoring unsafe member %r in %s", info.filename, path)
                continue
            if info.filename in self._entries:
                log.warning("Duplicate member %r in %s, keeping the first", info.filename, path)
                continue
            self._infos[info.filename] = info
            self._entries[info.filename] = EntryInfo(
                name=info.filename,
                header_offset=info.header_offset,
                compressed_size=info.compress_size,
                size=info.file_size,
                compress_type=info.compress_type,
                crc=info.CRC,
                encrypted=bool(info.flag_bits & 0x1),
            )

    @classmethod
    def open(cls, path: Path) -> "Archive":
        """Open a zip container for reading.

        Raises:
            ArchiveIOError: If the file cannot be read
            NotAnArchive: If the file is not a zip container
        """
        try:
            handle = open(path, "rb")
        except OSError as e:
            raise ArchiveIOError(f"Cannot open {path}: {e.strerror or e}") from e

        try:
            zf = zipfile.ZipFile(handle)
            view = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
        except zipfile.BadZipFile as e:
            handle.close()
            raise NotAnArchive(f"{path} is not a zip archive") from e
        except (OSError, ValueError) as e:
            handle.close()
            raise ArchiveIOError(f"Cannot read {path}: {e}") from e

        return cls(path, handle, view, zf)

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def list_entries(self) -> list[EntryInfo]:
        """List file entries in central directory order."""
        return list(self._entries.values())

    def get_entry(self, name: str) -> EntryInfo:
        try:
            return self._entries[name]
        except KeyError:
            raise EntryNotFound(f"No entry named {name!r}") from None

    def read_entry(self, name: str, start: int = 0, end: int | None = None) -> bytes:
        """Read bytes start..end (inclusive) of an entry, or all of it."""
        entry = self.get_entry(name)
        stop = entry.size if end is None else min(end + 1, entry.size)
        if start >= stop:
            return b""
        return b"".join(self._iter_slices(entry, start, stop, stop - start))

    def iter_entry(
        self, name: str, start: int, end: int, chunk_size: int = 64 * 1024
    ) -> Iterator[bytes]:
        """Yield bytes start..end (inclusive) of an entry in chunks."""
        entry = self.get_entry(name)
        stop = min(end + 1, entry.size)
        return self._iter_slices(entry, start, stop, chunk_size)

    def head(self, name: str, length: int = 512) -> bytes:
        """First bytes of an entry, for content sniffing."""
        return self.read_entry(name, 0, length - 1)

    def _iter_slices(
        self, entry: EntryInfo, start: int, stop: int, chunk_size: int
    ) -> Iterator[bytes]:
        # Resolve the backing buffer eagerly so errors surface before streaming
        if entry.stored and not entry.encrypted:
            base = self._data_offset(entry)
            buffer = self._view
        else:
            base = 0
            buffer = self._inflate(entry)
        return self._slices(buffer, base, start, stop, chunk_size)

    def _slices(self, buffer, base: int, start: int, stop: int, chunk_size: int):
        position = start
        while position < stop:
            if self.closed:
                raise ArchiveIOError(f"Archive {self.path} is closed")
            upto = min(position + chunk_size, stop)
            yield bytes(buffer[base + position : base + upto])
            position = upto

    def _data_offset(self, entry: EntryInfo) -> int:
        offset = self._data_offsets.get(entry.name)
        if offset is not None:
            return offset

        self._check_open()
        header_end = entry.header_offset + _LOCAL_HEADER.size
        if header_end > len(self._view):
            raise CorruptEntry(f"Local header of {entry.name!r} is truncated")
        fields = _LOCAL_HEADER.unpack(self._view[entry.header_offset : header_end])
        if fields[0] != _LOCAL_HEADER_SIG:
            raise CorruptEntry(f"Bad local header signature for {entry.name!r}")
        name_len, extra_len = fields[9], fields[10]
        offset = header_end + name_len + extra_len
        if offset + entry.size > len(self._view):
            raise CorruptEntry(f"Data of {entry.name!r} runs past end of archive")

        self._data_offsets[entry.name] = offset
        return offset

    def _inflate(self, entry: EntryInfo) -> bytes:
        data = self._inflated.get(entry.name)
        if data is not None:
            return data

        with self._guard:
            lock = self._entry_locks.setdefault(entry.name, threading.Lock())
        with lock:
            data = self._inflated.get(entry.name)
            if data is not None:
                return data
            self._check_open()
            if entry.encrypted:
                raise CorruptEntry(f"Entry {entry.name!r} is encrypted")
            try:
                data = self._zf.read(self._infos[entry.name])
            except (zipfile.BadZipFile, zlib.error, EOFError) as e:
                raise CorruptEntry(f"Cannot decompress {entry.name!r}: {e}") from e
            except NotImplementedError as e:
                raise CorruptEntry(
                    f"Unsupported compression for {entry.name!r}: {e}"
                ) from e
            except OSError as e:
                raise ArchiveIOError(f"Cannot read {entry.name!r}: {e}") from e
            log.debug("Inflated %s (%d bytes) from %s", entry.name, len(data), self.path)
            self._inflated[entry.name] = data
            return data

    def _check_open(self) -> None:
        if self.closed:
            raise ArchiveIOError(f"Archive {self.path} is closed")

    def close(self) -> None:
        """Release the memory map, zip handle and cached buffers."""
        if self.closed:
            return
        self.closed = True
        self._inflated.clear()
        self._zf.close()
        self._view.close()
        self._handle.close()
