"""Build the table of contents from nav, NCX or spine order."""

import logging

from lxml import etree

from cont_srv.core.archive import Archive
from cont_srv.core.errors import ArchiveError
from cont_srv.core.package_parser import first_child, localname, parse_xml, text_of
from cont_srv.core.paths import relative_dir, resolve_href
from cont_srv.models.epub import BookStructure, TocNode, TocSource, TocTarget, TocTree

log = logging.getLogger(__name__)

MAX_TOC_DEPTH = 64

EPUB_OPS_NS = "http://www.idpf.org/2007/ops"

# (nesting level, title, raw href)
_FlatEntry = tuple[int, str, str | None]


def build_toc(archive: Archive, structure: BookStructure) -> TocTree:
    """Build the table of contents, degrading rather than failing.

    Tries the EPUB 3 nav document first, then the NCX, and finally
    synthesizes one entry per spine item.
    """
    if structure.nav_path:
        entries = _load_entries(archive, structure.nav_path, _nav_entries)
        if entries:
            return TocTree(
                source=TocSource.NAV,
                root=_assemble(entries, relative_dir(structure.nav_path), structure),
            )
        log.info("Nav document %s gave no entries, trying NCX", structure.nav_path)

    if structure.ncx_path:
        entries = _load_entries(archive, structure.ncx_path, _ncx_entries)
        if entries:
            return TocTree(
                source=TocSource.NCX,
                root=_assemble(entries, relative_dir(structure.ncx_path), structure),
            )
        log.info("NCX %s gave no entries, using spine order", structure.ncx_path)

    return TocTree(source=TocSource.SPINE, root=_spine_root(structure))


def _load_entries(archive: Archive, path: str, extract) -> list[_FlatEntry]:
    try:
        data = archive.read_entry(path)
    except ArchiveError as e:
        log.warning("Cannot read navigation document %s: %s", path, e)
        return []

    try:
        root = parse_xml(data)
    except etree.XMLSyntaxError:
        try:
            root = parse_xml(data, recover=True)
        except etree.XMLSyntaxError as e:
            log.warning("Cannot parse navigation document %s: %s", path, e)
            return []
    if root is None:
        log.warning("Navigation document %s is empty", path)
        return []
    return extract(root)


def _nav_entries(root) -> list[_FlatEntry]:
    """Flatten <nav epub:type="toc"> list items in document order."""
    navs = [el for el in root.iter() if localname(el) == "nav"]
    toc_nav = None
    for nav in navs:
        nav_type = (
            nav.get(f"{{{EPUB_OPS_NS}}}type")
            or nav.get("epub:type")
            or nav.get("type")
            or ""
        )
        if "toc" in nav_type.split():
            toc_nav = nav
            break
    if toc_nav is None and navs:
        toc_nav = navs[0]
    if toc_nav is None:
        return []

    entries: list[_FlatEntry] = []
    kept = set()
    for li in toc_nav.iter():
        if localname(li) != "li":
            continue
        label = first_child(li, "a")
        if label is None:
            label = first_child(li, "span")
        if label is None:
            continue
        title = text_of(label) or (label.get("title") or "").strip()
        if not title:
            continue
        level = sum(1 for el in li.iterancestors() if el in kept)
        kept.add(li)
        entries.append((level, title, label.get("href")))
    return entries


def _ncx_entries(root) -> list[_FlatEntry]:
    """Flatten NCX navPoints in document order."""
    nav_map = None
    for el in root.iter():
        if localname(el) == "navMap":
            nav_map = el
            break
    if nav_map is None:
        return []

    entries: list[_FlatEntry] = []
    kept = set()
    for point in nav_map.iter():
        if localname(point) != "navPoint":
            continue
        nav_label = first_child(point, "navLabel")
        text = first_child(nav_label, "text") if nav_label is not None else None
        title = text_of(text) if text is not None else ""
        if not title:
            continue
        content = first_child(point, "content")
        href = content.get("src") if content is not None else None
        level = sum(1 for el in point.iterancestors() if el in kept)
        kept.add(point)
        entries.append((level, title, href))
    return entries


def _assemble(entries: list[_FlatEntry], base_dir: str, structure: BookStructure) -> TocNode:
    """Turn flat (level, title, href) entries into an owned tree.

    Entries nested deeper than MAX_TOC_DEPTH become siblings at the cap,
    and entries whose parent was skipped attach to the nearest kept ancestor.
    """
    chapter_indices = {chapter.path: chapter.index for chapter in structure.spine}
    root = TocNode(title="")
    stack: list[TocNode] = []

    for level, title, href in entries:
        depth = min(level, len(stack), MAX_TOC_DEPTH - 1)
        node = TocNode(title=title, target=_target(href, base_dir, structure, chapter_indices))
        parent = stack[depth - 1] if depth else root
        parent.children.append(node)
        del stack[depth:]
        stack.append(node)

    return root


def _target(
    href: str | None,
    base_dir: str,
    structure: BookStructure,
    chapter_indices: dict[str, int],
) -> TocTarget | None:
    if not href:
        return None
    path, anchor = resolve_href(base_dir, href)
    if path is None or path not in structure.resources_by_path:
        log.debug("TOC href %r does not name a book resource", href)
        return None
    return TocTarget(path=path, chapter_index=chapter_indices.get(path), anchor=anchor)


def _spine_root(structure: BookStructure) -> TocNode:
    root = TocNode(title="")
    for chapter in structure.spine:
        root.children.append(
            TocNode(
                title=chapter.path.rsplit("/", 1)[-1],
                target=TocTarget(path=chapter.path, chapter_index=chapter.index),
            )
        )
    return root
