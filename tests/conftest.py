"""Shared fixtures: small EPUB files written with zipfile."""

import zipfile
from pathlib import Path

import pytest

CONTAINER_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CH1_SIZE = 500

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(64))

STYLE_CSS = b"body { font-family: serif; }\n"

# (id, href, media type, properties)
DEFAULT_ITEMS = [
    ("nav", "nav.xhtml", "application/xhtml+xml", "nav"),
    ("ncx", "toc.ncx", "application/x-dtbncx+xml", ""),
    ("cover", "cover.xhtml", "application/xhtml+xml", ""),
    ("ch1", "ch1.xhtml", "application/xhtml+xml", ""),
    ("ch2", "ch2.xhtml", "application/xhtml+xml", ""),
    ("style", "css/style.css", "text/css", ""),
    ("pic", "images/pic.png", "image/png", ""),
    ("ghost", "ghost.xhtml", "application/xhtml+xml", ""),
]

DEFAULT_SPINE = ["cover", "ch1", "ch2"]


def pad_to(data: bytes, size: int) -> bytes:
    assert len(data) <= size
    return data + b" " * (size - len(data))


def xhtml(title: str, body: str, head: str = "") -> bytes:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<html xmlns="http://www.w3.org/1999/xhtml">'
        f"<head><title>{title}</title>{head}</head>"
        f"<body>{body}</body></html>"
    ).encode("utf-8")


CH1_XHTML = pad_to(
    xhtml(
        "Chapter 1",
        '<h1 id="top">Chapter 1</h1><p>'
        '<a href="ch2.xhtml#sec">next</a> '
        '<a href="#top">top</a> '
        '<a href="https://example.com/">web</a> '
        '<a href="../../../etc/passwd">bad</a> '
        '<a href="missing.xhtml">gone</a></p>'
        '<img src="images/pic.png" alt="pic"/>',
        head='<link rel="stylesheet" href="css/style.css"/>',
    ),
    CH1_SIZE,
)


def package_document(
    items=DEFAULT_ITEMS,
    spine=DEFAULT_SPINE,
    toc_id: str | None = "ncx",
    title: str = "Sample Book",
    extra_metadata: str = "",
    doctype: str = "",
) -> bytes:
    manifest = "\n".join(
        f'    <item id="{item_id}" href="{href}" media-type="{media_type}"'
        + (f' properties="{props}"' if props else "")
        + "/>"
        for item_id, href, media_type, props in items
    )
    itemrefs = "".join(f'<itemref idref="{idref}"/>' for idref in spine)
    toc_attr = f' toc="{toc_id}"' if toc_id else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
{doctype}<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="uid">urn:uuid:0d1e2f</dc:identifier>
    <dc:title>{title}</dc:title>
    <dc:creator>Jane Writer</dc:creator>
    <dc:creator>John Editor</dc:creator>
    <dc:language>en</dc:language>
    <dc:publisher>Small Press</dc:publisher>{extra_metadata}
  </metadata>
  <manifest>
{manifest}
  </manifest>
  <spine{toc_attr}>{itemrefs}</spine>
</package>
""".encode("utf-8")


def nav_document(list_items: str, extra_navs: str = "") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>Contents</title></head>
<body>
{extra_navs}<nav epub:type="toc"><h1>Contents</h1><ol>
{list_items}
</ol></nav>
</body></html>
""".encode("utf-8")


DEFAULT_NAV = nav_document(
    '<li><a href="cover.xhtml">Cover</a></li>\n'
    '<li><a href="ch1.xhtml">Chapter 1</a>'
    '<ol><li><a href="ch1.xhtml#top">Section 1.1</a></li></ol></li>\n'
    '<li><a href="ch2.xhtml">Chapter 2</a></li>',
    extra_navs='<nav epub:type="landmarks"><ol><li><a href="ch2.xhtml">Landmark</a></li></ol></nav>\n',
)


def ncx_document(points: list[tuple[str, str]]) -> bytes:
    nav_points = "\n".join(
        f'<navPoint id="p{i}" playOrder="{i}"><navLabel><text>{title}</text></navLabel>'
        f'<content src="{src}"/></navPoint>'
        for i, (title, src) in enumerate(points, start=1)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
<head/><docTitle><text>Sample Book</text></docTitle>
<navMap>
{nav_points}
</navMap>
</ncx>
""".encode("utf-8")


DEFAULT_NCX = ncx_document(
    [("NCX Cover", "cover.xhtml"), ("NCX One", "ch1.xhtml"), ("NCX Two", "ch2.xhtml#sec")]
)


def book_files(**package_kwargs) -> dict[str, bytes]:
    """Archive members of the standard sample book."""
    return {
        "META-INF/container.xml": CONTAINER_XML,
        "OEBPS/content.opf": package_document(**package_kwargs),
        "OEBPS/nav.xhtml": DEFAULT_NAV,
        "OEBPS/toc.ncx": DEFAULT_NCX,
        "OEBPS/cover.xhtml": xhtml("Cover", "<h1>Cover</h1>"),
        "OEBPS/ch1.xhtml": CH1_XHTML,
        "OEBPS/ch2.xhtml": xhtml("Chapter 2", '<h1>Chapter 2</h1><h2 id="sec">More</h2>'),
        "OEBPS/css/style.css": STYLE_CSS,
        "OEBPS/images/pic.png": PNG_BYTES,
    }


def write_epub(
    path: Path,
    files: dict[str, bytes],
    compression: int = zipfile.ZIP_DEFLATED,
    with_mimetype: bool = True,
) -> Path:
    """Write an OCF zip: stored mimetype first, then the given members."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        if with_mimetype:
            zf.writestr("mimetype", b"application/epub+zip", compress_type=zipfile.ZIP_STORED)
        for name, data in files.items():
            zf.writestr(name, data, compress_type=compression)
    return path


@pytest.fixture(params=[zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED], ids=["stored", "deflated"])
def compression(request) -> int:
    return request.param


@pytest.fixture
def epub_path(tmp_path: Path, compression: int) -> Path:
    """The sample book, once with stored and once with deflated members."""
    return write_epub(tmp_path / "sample.epub", book_files(), compression)


@pytest.fixture
def deflated_epub(tmp_path: Path) -> Path:
    return write_epub(tmp_path / "sample.epub", book_files())


@pytest.fixture
def ncx_only_epub(tmp_path: Path) -> Path:
    items = [item for item in DEFAULT_ITEMS if item[0] != "nav"]
    files = book_files(items=items)
    del files["OEBPS/nav.xhtml"]
    return write_epub(tmp_path / "ncx_only.epub", files)


@pytest.fixture
def no_toc_epub(tmp_path: Path) -> Path:
    items = [item for item in DEFAULT_ITEMS if item[0] not in ("nav", "ncx")]
    files = book_files(items=items, toc_id=None)
    del files["OEBPS/nav.xhtml"]
    del files["OEBPS/toc.ncx"]
    return write_epub(tmp_path / "no_toc.epub", files)


@pytest.fixture
def not_a_zip(tmp_path: Path) -> Path:
    path = tmp_path / "broken.epub"
    path.write_bytes(b"this is plain text, not a zip container\n")
    return path
