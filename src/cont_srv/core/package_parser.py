"""Parse the OCF container and OPF package document of an EPUB."""

import logging

from lxml import etree

from cont_srv.core.archive import Archive
from cont_srv.core.errors import EntryNotFound, MalformedPackage, MissingRootFile
from cont_srv.core.paths import join_book_path, relative_dir, split_href
from cont_srv.models.epub import BookMetadata, BookStructure, Chapter, Resource

log = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_MEDIA_TYPE = "application/oebps-package+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


def xml_parser(recover: bool = False) -> etree.XMLParser:
    """XML parser that never resolves entities or touches the network."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        remove_comments=True,
        remove_pis=True,
        recover=recover,
    )


def parse_xml(data: bytes, recover: bool = False):
    """Parse an XML document; recovering parsers may return None."""
    return etree.fromstring(data, parser=xml_parser(recover))


def localname(element) -> str:
    """Namespace-free tag name ('' for comments and processing instructions)."""
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def children(element, name: str) -> list:
    return [child for child in element if localname(child) == name]


def first_child(element, name: str):
    for child in element:
        if localname(child) == name:
            return child
    return None


def text_of(element) -> str:
    """Whitespace-normalized text content of an element."""
    return " ".join("".join(element.itertext()).split())


def find_package_path(archive: Archive) -> str:
    """Locate the package document through META-INF/container.xml."""
    try:
        data = archive.read_entry(CONTAINER_PATH)
    except EntryNotFound:
        raise MissingRootFile(f"{CONTAINER_PATH} is missing") from None

    try:
        root = parse_xml(data)
    except etree.XMLSyntaxError as e:
        raise MalformedPackage(f"Cannot parse {CONTAINER_PATH}: {e}") from e

    rootfiles = [el for el in root.iter() if localname(el) == "rootfile"]
    preferred = [el for el in rootfiles if el.get("media-type") == PACKAGE_MEDIA_TYPE]
    for rootfile in preferred + rootfiles:
        full_path = (rootfile.get("full-path") or "").strip()
        if full_path:
            path = join_book_path("", full_path)
            if path is None:
                raise MissingRootFile(f"Root file path {full_path!r} is invalid")
            return path

    raise MissingRootFile("Container does not name a package document")


def parse_package(archive: Archive) -> BookStructure:
    """Parse manifest, spine and metadata into a BookStructure.

    Raises:
        MissingRootFile: If the container pointer or package document is absent
        MalformedPackage: If the package document is unparsable or the spine
            references an undeclared manifest item
    """
    package_path = find_package_path(archive)
    try:
        data = archive.read_entry(package_path)
    except EntryNotFound:
        raise MissingRootFile(f"Package document {package_path} is missing") from None

    try:
        root = parse_xml(data)
    except etree.XMLSyntaxError as e:
        raise MalformedPackage(f"Cannot parse {package_path}: {e}") from e

    if localname(root) != "package":
        raise MalformedPackage(f"{package_path} is not a package document")

    manifest = first_child(root, "manifest")
    spine = first_child(root, "spine")
    if manifest is None:
        raise MalformedPackage(f"{package_path} has no manifest")
    if spine is None:
        raise MalformedPackage(f"{package_path} has no spine")

    package_dir = relative_dir(package_path)
    resources = _parse_manifest(archive, manifest, package_dir)
    resources_by_path: dict[str, Resource] = {}
    for resource in resources.values():
        resources_by_path.setdefault(resource.path, resource)

    chapters = _parse_spine(spine, resources)

    nav_path = None
    for resource in resources.values():
        if "nav" in resource.properties:
            nav_path = resource.path
            break

    ncx_path = None
    toc_id = spine.get("toc")
    if toc_id and toc_id in resources:
        ncx_path = resources[toc_id].path
    else:
        for resource in resources.values():
            if resource.media_type == NCX_MEDIA_TYPE:
                ncx_path = resource.path
                break

    metadata_el = first_child(root, "metadata")
    metadata = _parse_metadata(metadata_el) if metadata_el is not None else BookMetadata()

    return BookStructure(
        package_path=package_path,
        metadata=metadata,
        resources=resources,
        resources_by_path=resources_by_path,
        spine=chapters,
        nav_path=nav_path,
        ncx_path=ncx_path,
    )


def _parse_manifest(archive: Archive, manifest, package_dir: str) -> dict[str, Resource]:
    """Return {manifest_id: Resource} with hrefs resolved against package_dir."""
    resources: dict[str, Resource] = {}
    for item in children(manifest, "item"):
        item_id = (item.get("id") or "").strip()
        href = (item.get("href") or "").strip()
        if not item_id or not href:
            log.info("Skipping manifest item without id or href")
            continue
        if item_id in resources:
            log.warning("Duplicate manifest id %r, keeping the first declaration", item_id)
            continue

        href_path, _ = split_href(href)
        path = join_book_path(package_dir, href_path)
        if path is None:
            log.warning("Manifest item %r points outside the book: %r", item_id, href)
            continue

        size = None
        if path in archive:
            size = archive.get_entry(path).size
        else:
            log.info("Manifest item %r names missing entry %s", item_id, path)

        resources[item_id] = Resource(
            id=item_id,
            path=path,
            media_type=(item.get("media-type") or "").strip(),
            size=size,
            properties=tuple((item.get("properties") or "").split()),
        )
    return resources


def _parse_spine(spine, resources: dict[str, Resource]) -> list[Chapter]:
    chapters: list[Chapter] = []
    for itemref in children(spine, "itemref"):
        idref = (itemref.get("idref") or "").strip()
        if idref not in resources:
            raise MalformedPackage(f"Spine item {idref!r} has no manifest entry")
        chapters.append(
            Chapter(
                index=len(chapters),
                resource_id=idref,
                path=resources[idref].path,
                linear=(itemref.get("linear") or "yes").strip().lower() != "no",
            )
        )
    return chapters


def _parse_metadata(metadata) -> BookMetadata:
    """Extract Dublin Core metadata."""

    def texts(name: str) -> list[str]:
        return [t for t in (text_of(el) for el in children(metadata, name)) if t]

    title = texts("title")
    language = texts("language")
    publisher = texts("publisher")
    identifier = texts("identifier")

    return BookMetadata(
        title=title[0] if title else "Unknown Title",
        authors=texts("creator"),
        language=language[0] if language else None,
        publisher=publisher[0] if publisher else None,
        identifier=identifier[0] if identifier else None,
    )
