"""HTML pages: directory listings, book TOC and the reading view."""

import html
import warnings
from dataclasses import dataclass
from urllib.parse import quote

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from cont_srv.core.book import Book
from cont_srv.core.resolver import ResolvedResource, rewrite_links
from cont_srv.core.urls import READ_PREFIX, TOC_PREFIX, quote_path, read_url, toc_url
from cont_srv.models.epub import TocTree

# Suppress XML parsing warnings - chapters are XHTML parsed as HTML
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

HTML_TYPE = "text/html; charset=utf-8"

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_size(size: int) -> str:
    """Human-readable size with two decimals, e.g. '65.92 KB'."""
    value = float(size)
    unit = 0
    while value >= 1024.0 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024.0
        unit += 1
    return f"{value:.2f} {_SIZE_UNITS[unit]}"


@dataclass(frozen=True)
class ListingEntry:
    """One row of a directory listing."""

    name: str
    is_dir: bool
    size: int | None = None


def render_directory(url_path: str, entries: list[ListingEntry]) -> str:
    """Render a directory listing with Read links for EPUB files."""
    base = url_path if url_path.endswith("/") else url_path + "/"
    out = []
    for entry in sorted(entries, key=lambda e: e.name):
        url = base + quote(entry.name, safe="")
        name = html.escape(entry.name)
        row = ["<div>"]
        row.append("[+&nbsp;" if entry.is_dir else "[-&nbsp;")
        row.append(f'<a href="{url}">{name}</a>]')
        if not entry.is_dir and entry.size is not None:
            row.append(f"&nbsp;[{format_size(entry.size)}]")
        if not entry.is_dir and entry.name.lower().endswith(".epub"):
            row.append(f'&nbsp;[<a href="{TOC_PREFIX}{url}">Read</a>]')
        row.append("</div>")
        out.append("".join(row))
    return "".join(out)


def render_toc(book: Book, book_id: str) -> str:
    """Render the table of contents page of a book.

    TOC links are archive-root relative and resolved against a <base>
    pointing at the reading view of the book.
    """
    title = html.escape(book.structure.metadata.title)
    out = [
        "<!DOCTYPE html><html><head>",
        '<meta charset="utf-8"/>',
        f"<title>{title}</title>",
        f'<base href="{READ_PREFIX}/{book_id}/"/>',
        "</head><body>",
        f"<h1>{title}</h1>",
    ]
    out.extend(_toc_rows(book.toc))
    out.append("</body></html>")
    return "".join(out)


def _toc_rows(toc: TocTree) -> list[str]:
    rows = []
    for depth, node in toc.root.walk():
        indent = "&emsp;" * depth
        label = html.escape(node.title)
        if node.target is None:
            rows.append(f"<div>{indent}<span>{label}</span></div>")
            continue
        href = quote_path(node.target.path)
        if node.target.anchor:
            href += "#" + html.escape(node.target.anchor, quote=True)
        rows.append(f'<div>{indent}<a href="{href}">{label}</a></div>')
    return rows


def navigation_bar(book: Book, book_id: str, book_path: str, index: int) -> str:
    """Prev / Table of Contents / Next bar for a spine document."""
    spine = book.structure.spine
    out = ['<div style="display: flex; justify-content: space-between; align-items: center;">']
    if index > 0:
        out.append(f'<a href="{read_url(book_id, spine[index - 1].path)}">Prev</a>')
    else:
        out.append('<span style="color:grey">Prev</span>')
    if book.toc.entries:
        out.append(f'<a href="{toc_url(book_path)}">Table of Contents</a>')
    else:
        out.append('<span style="color:grey">Table of Contents</span>')
    if index < len(spine) - 1:
        out.append(f'<a href="{read_url(book_id, spine[index + 1].path)}">Next</a>')
    else:
        out.append('<span style="color:grey">Next</span>')
    out.append("</div>")
    return "".join(out)


def render_reading_view(
    resolved: ResolvedResource, raw: bytes, book_id: str, book_path: str
) -> bytes:
    """Rewrite links of an HTML document and frame it with navigation bars."""
    book = resolved.book
    soup = BeautifulSoup(raw, "lxml")
    rewrite_links(soup, book_id, resolved.path, book.structure)

    index = book.structure.chapter_index(resolved.path)
    body = soup.body
    if index is not None and body is not None:
        bar = navigation_bar(book, book_id, book_path, index)
        body.insert(0, BeautifulSoup(bar, "html.parser").div)
        body.append(BeautifulSoup(bar, "html.parser").div)

    return str(soup).encode("utf-8")
