"""Map requested book paths to archive resources."""

import logging
import posixpath
from dataclasses import dataclass

from bs4 import BeautifulSoup

from cont_srv.core.book import Book
from cont_srv.core.content_type import guess_type, is_html_type
from cont_srv.core.errors import NotFound, OutOfBookAccess
from cont_srv.core.paths import has_scheme, relative_dir, resolve_href
from cont_srv.core.urls import content_url, read_url
from cont_srv.models.epub import BookStructure, Resource

log = logging.getLogger(__name__)

SNIFF_LENGTH = 512

LINK_ATTRIBUTES = ("href", "src", "xlink:href", "poster")


@dataclass(frozen=True)
class ResolvedResource:
    """A book resource ready to be streamed."""

    book: Book
    resource: Resource
    mime_type: str

    @property
    def path(self) -> str:
        return self.resource.path

    @property
    def size(self) -> int:
        return self.resource.size or 0


def normalize_request_path(requested: str) -> str:
    """Validate an untrusted in-book path and normalize it.

    Raises:
        OutOfBookAccess: For absolute paths, schemed URLs and any '..' segment
        NotFound: For empty paths
    """
    path = requested.replace("\\", "/")
    if path.startswith("/") or has_scheme(path) or "\x00" in path:
        raise OutOfBookAccess(f"Absolute or schemed path {requested!r}")
    if ".." in path.split("/"):
        raise OutOfBookAccess(f"Path traversal in {requested!r}")
    normalized = posixpath.normpath(path) if path else ""
    if normalized in ("", "."):
        raise NotFound("Empty resource path")
    return normalized


def resolve(book: Book, requested_path: str) -> ResolvedResource:
    """Resolve a path relative to the book root to a resource and MIME type."""
    try:
        path = normalize_request_path(requested_path)
    except OutOfBookAccess:
        log.warning("Blocked out-of-book access to %r in %s", requested_path, book.path)
        raise

    resource = book.structure.resources_by_path.get(path)
    if resource is None or resource.size is None:
        raise NotFound(f"Resource [{path}] not found")
    return ResolvedResource(book, resource, _mime_type(book, resource))


def resolve_chapter(book: Book, index: int) -> ResolvedResource:
    """Resolve a spine position to its resource."""
    if not 0 <= index < len(book.structure.spine):
        raise NotFound(f"Chapter {index} not found")
    return resolve(book, book.structure.spine[index].path)


def _mime_type(book: Book, resource: Resource) -> str:
    if resource.media_type:
        return resource.media_type
    return guess_type(resource.path, book.archive.head(resource.path, SNIFF_LENGTH))


def book_url(book_id: str, structure: BookStructure, path: str) -> str:
    """Reading-view URL for spine documents, raw content URL otherwise."""
    resource = structure.resources_by_path.get(path)
    if (
        resource is not None
        and structure.chapter_index(path) is not None
        and is_html_type(resource.media_type or guess_type(path))
    ):
        return read_url(book_id, path)
    return content_url(book_id, path)


def rewrite_links(
    soup: BeautifulSoup, book_id: str, resource_path: str, structure: BookStructure
) -> BeautifulSoup:
    """Point relative links in a document at the served book namespace.

    Fragment-only and schemed links are left alone. Links that leave the
    book or name nothing in it lose their attribute.
    """
    base_dir = relative_dir(resource_path)
    for tag in soup.find_all(True):
        for attr in LINK_ATTRIBUTES:
            value = tag.get(attr)
            if not isinstance(value, str):
                continue
            value = value.strip()
            if not value or value.startswith("#") or value.startswith("//"):
                continue
            if has_scheme(value):
                continue

            path, fragment = resolve_href(base_dir, value)
            if path is None or path not in structure.resources_by_path:
                log.debug("Dropping %s=%r in %s", attr, value, resource_path)
                del tag[attr]
                continue

            url = book_url(book_id, structure, path)
            tag[attr] = f"{url}#{fragment}" if fragment else url
    return soup
