"""URL layout of the served book namespace."""

import base64
import binascii
from urllib.parse import quote

from cont_srv.core.errors import InvalidBookId

TOC_PREFIX = "/epub_toc"
CONTENT_PREFIX = "/epub_cont"
READ_PREFIX = "/epub_read"


def encode_book_id(book_path: str) -> str:
    """URL-safe, unpadded base64 of a book's root-relative path."""
    return base64.urlsafe_b64encode(book_path.encode("utf-8")).decode("ascii").rstrip("=")


def decode_book_id(book_id: str) -> str:
    """Inverse of encode_book_id.

    Raises:
        InvalidBookId: If the id is not valid base64 of UTF-8 text
    """
    padded = book_id + "=" * (-len(book_id) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidBookId(f"Invalid book id {book_id!r}") from e


def quote_path(path: str) -> str:
    return quote(path, safe="/")


def toc_url(book_path: str) -> str:
    return f"{TOC_PREFIX}/{quote_path(book_path)}"


def content_url(book_id: str, inner_path: str) -> str:
    return f"{CONTENT_PREFIX}/{book_id}/{quote_path(inner_path)}"


def read_url(book_id: str, inner_path: str) -> str:
    return f"{READ_PREFIX}/{book_id}/{quote_path(inner_path)}"
