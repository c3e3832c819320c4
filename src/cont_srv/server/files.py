"""Directory listings and plain file downloads under the root directory."""

import logging
import os
from pathlib import Path

from fastapi import Request
from fastapi.responses import HTMLResponse

from cont_srv.core.content_type import DEFAULT_TYPE, guess_type
from cont_srv.core.errors import ArchiveIOError, NotFound, OutOfBookAccess
from cont_srv.core.pages import ListingEntry, render_directory
from cont_srv.core.streamer import FileSource, stream
from cont_srv.core.urls import quote_path
from cont_srv.models.config import ServerConfig

log = logging.getLogger(__name__)


def resolve_under_root(root: Path, url_path: str) -> tuple[Path, str]:
    """Map a URL path onto the root directory.

    Returns the resolved filesystem path and its root-relative POSIX form
    ('' for the root itself).

    Raises:
        OutOfBookAccess: If the path leaves the root directory
    """
    if "\x00" in url_path:
        raise OutOfBookAccess(f"NUL byte in path {url_path!r}")
    relative = url_path.replace("\\", "/").lstrip("/")
    if ".." in relative.split("/"):
        raise OutOfBookAccess(f"Path traversal in {url_path!r}")

    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        raise OutOfBookAccess(f"{url_path!r} resolves outside the root directory")
    if candidate == root:
        return candidate, ""
    return candidate, candidate.relative_to(root).as_posix()


def list_directory(path: Path) -> list[ListingEntry]:
    entries = []
    try:
        with os.scandir(path) as it:
            for entry in it:
                try:
                    is_dir = entry.is_dir()
                    size = None if is_dir else entry.stat().st_size
                except OSError:
                    continue
                entries.append(ListingEntry(name=entry.name, is_dir=is_dir, size=size))
    except OSError as e:
        raise ArchiveIOError(f"Reading dir [{path}] failed: {e}") from e
    return entries


def guess_file_type(path: Path) -> str:
    """Guess by name, sniffing the leading bytes only when that fails."""
    mime = guess_type(path.name)
    if mime != DEFAULT_TYPE:
        return mime
    try:
        with path.open("rb") as handle:
            return guess_type(path.name, handle.read(512))
    except OSError:
        return DEFAULT_TYPE


def serve_path(root: Path, url_path: str, request: Request, config: ServerConfig):
    """Serve a directory listing or a range-aware file download."""
    target, relative = resolve_under_root(root, url_path)

    if target.is_dir():
        listing = render_directory("/" + quote_path(relative), list_directory(target))
        return HTMLResponse(listing)

    if not target.is_file():
        raise NotFound("Resource not found")

    try:
        size = target.stat().st_size
    except OSError as e:
        raise ArchiveIOError(f"Opening file [{target}] failed: {e}") from e

    source = FileSource(target, guess_file_type(target), size)
    return stream(
        source,
        request.headers.get("range"),
        head=request.method == "HEAD",
        threshold=config.stream_threshold,
        chunk_size=config.chunk_size,
    )
