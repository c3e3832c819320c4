"""Guess content types from file names and leading bytes."""

import mimetypes
import posixpath

import filetype

DEFAULT_TYPE = "application/octet-stream"

# Types that platform mime tables often lack or get wrong
_EXTENSION_TYPES = {
    ".xhtml": "application/xhtml+xml",
    ".xht": "application/xhtml+xml",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".epub": "application/epub+zip",
    ".opf": "application/oebps-package+xml",
    ".ncx": "application/x-dtbncx+xml",
    ".otf": "font/otf",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".pdf": "application/pdf",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".webm": "video/webm",
    ".md": "text/markdown",
    ".txt": "text/plain",
}


def sniff_type(data: bytes) -> str | None:
    """Identify common binary and markup formats by their leading bytes."""
    mime = filetype.guess_mime(data)
    if mime:
        return mime

    text = data.lstrip()[:256].lower()
    if text.startswith(b"<?xml") or text.startswith(b"<!doctype") or text.startswith(b"<html"):
        if b"<html" in text or b"<!doctype html" in text:
            if b"xmlns=\"http://www.w3.org/1999/xhtml\"" in text:
                return "application/xhtml+xml"
            return "text/html"
        if b"<svg" in text:
            return "image/svg+xml"
        return "application/xml"
    return None


def guess_type(filename: str, sniffed: bytes = b"") -> str:
    """Guess a MIME type from a file name, falling back to its leading bytes."""
    ext = posixpath.splitext(filename.replace("\\", "/"))[1].lower()
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]

    mime, _ = mimetypes.guess_type(filename, strict=False)
    if mime:
        return mime

    if sniffed:
        return sniff_type(sniffed) or DEFAULT_TYPE
    return DEFAULT_TYPE


def is_html_type(mime: str) -> bool:
    base = mime.split(";", 1)[0].strip().lower()
    return base in ("text/html", "application/xhtml+xml")
