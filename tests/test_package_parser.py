"""Tests for container and package document parsing."""

import pytest

from cont_srv.core.archive import Archive
from cont_srv.core.errors import MalformedPackage, MissingRootFile
from cont_srv.core.package_parser import find_package_path, parse_package

from conftest import CONTAINER_XML, DEFAULT_ITEMS, book_files, package_document, write_epub, xhtml


def parse(path):
    with Archive.open(path) as archive:
        return parse_package(archive)


def test_parse_sample_book(epub_path):
    structure = parse(epub_path)

    assert structure.package_path == "OEBPS/content.opf"
    assert structure.package_dir == "OEBPS"
    assert [chapter.path for chapter in structure.spine] == [
        "OEBPS/cover.xhtml",
        "OEBPS/ch1.xhtml",
        "OEBPS/ch2.xhtml",
    ]
    assert [chapter.index for chapter in structure.spine] == [0, 1, 2]
    assert structure.nav_path == "OEBPS/nav.xhtml"
    assert structure.ncx_path == "OEBPS/toc.ncx"


def test_metadata(epub_path):
    metadata = parse(epub_path).metadata

    assert metadata.title == "Sample Book"
    assert metadata.authors == ["Jane Writer", "John Editor"]
    assert metadata.language == "en"
    assert metadata.publisher == "Small Press"
    assert metadata.identifier == "urn:uuid:0d1e2f"


def test_manifest_resources(epub_path):
    structure = parse(epub_path)

    style = structure.resources["style"]
    assert style.path == "OEBPS/css/style.css"
    assert style.media_type == "text/css"
    assert style.size is not None
    assert structure.resources_by_path["OEBPS/images/pic.png"].id == "pic"
    assert structure.resources["nav"].properties == ("nav",)


def test_missing_entry_kept_without_size(epub_path):
    ghost = parse(epub_path).resources["ghost"]

    assert ghost.path == "OEBPS/ghost.xhtml"
    assert ghost.size is None


def test_chapter_index(epub_path):
    structure = parse(epub_path)

    assert structure.chapter_index("OEBPS/ch2.xhtml") == 2
    assert structure.chapter_index("OEBPS/css/style.css") is None


def test_non_linear_spine_item(tmp_path):
    files = book_files()
    files["OEBPS/content.opf"] = files["OEBPS/content.opf"].replace(
        b'<itemref idref="cover"/>', b'<itemref idref="cover" linear="no"/>'
    )
    structure = parse(write_epub(tmp_path / "book.epub", files))

    assert [chapter.linear for chapter in structure.spine] == [False, True, True]


def test_duplicate_manifest_id_keeps_first(tmp_path):
    items = DEFAULT_ITEMS + [("ch1", "ch2.xhtml", "application/xhtml+xml", "")]
    structure = parse(write_epub(tmp_path / "book.epub", book_files(items=items)))

    assert structure.resources["ch1"].path == "OEBPS/ch1.xhtml"


def test_spine_reference_without_manifest_item(tmp_path):
    files = book_files(spine=["cover", "ch1", "chapter-missing"])

    with pytest.raises(MalformedPackage):
        parse(write_epub(tmp_path / "book.epub", files))


def test_hrefs_are_url_decoded(tmp_path):
    items = DEFAULT_ITEMS + [("ch3", "chapter%20three.xhtml", "application/xhtml+xml", "")]
    files = book_files(items=items, spine=["cover", "ch1", "ch2", "ch3"])
    files["OEBPS/chapter three.xhtml"] = xhtml("Three", "<p>3</p>")
    structure = parse(write_epub(tmp_path / "book.epub", files))

    assert structure.resources["ch3"].path == "OEBPS/chapter three.xhtml"
    assert structure.resources["ch3"].size is not None


def test_escaping_manifest_href_is_dropped(tmp_path):
    items = DEFAULT_ITEMS + [("evil", "../../outside.xhtml", "application/xhtml+xml", "")]
    structure = parse(write_epub(tmp_path / "book.epub", book_files(items=items)))

    assert "evil" not in structure.resources


def test_package_at_archive_root(tmp_path):
    files = {
        "META-INF/container.xml": CONTAINER_XML.replace(b"OEBPS/content.opf", b"package.opf"),
        "package.opf": package_document(
            items=[("c", "text/c.xhtml", "application/xhtml+xml", "")],
            spine=["c"],
            toc_id=None,
        ),
        "text/c.xhtml": xhtml("C", "<p>c</p>"),
    }
    structure = parse(write_epub(tmp_path / "book.epub", files))

    assert structure.package_dir == ""
    assert structure.spine[0].path == "text/c.xhtml"
    assert structure.nav_path is None
    assert structure.ncx_path is None


def test_ncx_found_by_media_type(tmp_path):
    structure = parse(write_epub(tmp_path / "book.epub", book_files(toc_id=None)))

    assert structure.ncx_path == "OEBPS/toc.ncx"


def test_missing_container(tmp_path):
    files = book_files()
    del files["META-INF/container.xml"]

    with Archive.open(write_epub(tmp_path / "book.epub", files)) as archive:
        with pytest.raises(MissingRootFile):
            find_package_path(archive)


def test_missing_package_document(tmp_path):
    files = book_files()
    del files["OEBPS/content.opf"]

    with pytest.raises(MissingRootFile):
        parse(write_epub(tmp_path / "book.epub", files))


def test_container_without_rootfile(tmp_path):
    files = book_files()
    files["META-INF/container.xml"] = b'<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container"/>'

    with pytest.raises(MissingRootFile):
        parse(write_epub(tmp_path / "book.epub", files))


def test_unparsable_package_document(tmp_path):
    files = book_files()
    files["OEBPS/content.opf"] = b"<package><manifest>"

    with pytest.raises(MalformedPackage):
        parse(write_epub(tmp_path / "book.epub", files))


def test_package_without_spine(tmp_path):
    files = book_files()
    files["OEBPS/content.opf"] = (
        b'<package xmlns="http://www.idpf.org/2007/opf"><manifest/></package>'
    )

    with pytest.raises(MalformedPackage):
        parse(write_epub(tmp_path / "book.epub", files))


def test_external_entities_are_not_resolved(tmp_path):
    secret = tmp_path / "secret.txt"
    secret.write_text("TOPSECRET")
    doctype = f'<!DOCTYPE package [<!ENTITY xxe SYSTEM "{secret.as_uri()}">]>\n'
    files = book_files(title="Book &xxe;", doctype=doctype)
    structure = parse(write_epub(tmp_path / "book.epub", files))

    assert "TOPSECRET" not in structure.metadata.title
