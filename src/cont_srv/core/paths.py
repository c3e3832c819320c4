"""Resolution of hrefs inside a book's archive namespace."""

import posixpath
import re
from urllib.parse import unquote

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


def has_scheme(href: str) -> bool:
    """True for URLs such as ``http://...``, ``mailto:`` or ``C:`` drive paths."""
    return bool(_SCHEME.match(href))


def split_href(href: str) -> tuple[str, str | None]:
    """Split an href into its URL-decoded path and raw fragment."""
    path, sep, fragment = href.partition("#")
    path = path.split("?", 1)[0]
    return unquote(path), (fragment if sep and fragment else None)


def join_book_path(base_dir: str, relative: str) -> str | None:
    """Resolve a relative path against a directory inside the archive.

    Returns the normalized archive-root relative path, or None when the
    path is absolute, carries a scheme or climbs above the archive root.
    """
    relative = relative.replace("\\", "/")
    if not relative or relative.startswith("/") or has_scheme(relative):
        return None
    joined = posixpath.join(base_dir, relative) if base_dir else relative
    normalized = posixpath.normpath(joined)
    if normalized in (".", "..") or normalized.startswith("../"):
        return None
    return normalized


def resolve_href(base_dir: str, href: str) -> tuple[str | None, str | None]:
    """Resolve an href found in a document living in base_dir.

    Returns (path, fragment). Path is None for fragment-only hrefs and for
    hrefs that point outside the archive.
    """
    path, fragment = split_href(href.strip())
    if not path:
        return None, fragment
    return join_book_path(base_dir, path), fragment


def relative_dir(path: str) -> str:
    """Directory part of an archive path ('' for root level members)."""
    return posixpath.dirname(path)
