"""Data models for EPUB structure."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Resource(BaseModel):
    """One manifest item inside the archive."""

    model_config = ConfigDict(frozen=True)

    id: str
    path: str  # archive-root relative, normalized
    media_type: str = ""
    size: int | None = None
    properties: tuple[str, ...] = ()

    @property
    def file_name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class Chapter(BaseModel):
    """One element of the reading order."""

    model_config = ConfigDict(frozen=True)

    index: int
    resource_id: str
    path: str
    linear: bool = True


class BookMetadata(BaseModel):
    """Book-level metadata."""

    title: str = "Unknown Title"
    authors: list[str] = Field(default_factory=list)
    language: str | None = None
    publisher: str | None = None
    identifier: str | None = None


class TocTarget(BaseModel):
    """Where a table of contents entry points."""

    model_config = ConfigDict(frozen=True)

    path: str
    chapter_index: int | None = None
    anchor: str | None = None

    @property
    def href(self) -> str:
        """Archive-root relative href including the anchor."""
        if self.anchor:
            return f"{self.path}#{self.anchor}"
        return self.path


class TocNode(BaseModel):
    """Single entry in table of contents."""

    title: str
    target: TocTarget | None = None
    children: list["TocNode"] = Field(default_factory=list)

    def walk(self):
        """Yield (depth, node) for every descendant in document order."""
        stack = [(0, child) for child in reversed(self.children)]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            stack.extend((depth + 1, child) for child in reversed(node.children))


class TocSource(str, Enum):
    """Which navigation format the table of contents was built from."""

    NAV = "nav"
    NCX = "ncx"
    SPINE = "spine"


class TocTree(BaseModel):
    """Table of contents with the format it came from."""

    source: TocSource
    root: TocNode = Field(default_factory=lambda: TocNode(title=""))

    @property
    def entries(self) -> list[TocNode]:
        return self.root.children

    def targets(self) -> list[TocTarget]:
        return [node.target for _, node in self.root.walk() if node.target]


class BookStructure(BaseModel):
    """Normalized package document: manifest, spine and metadata."""

    package_path: str
    metadata: BookMetadata = Field(default_factory=BookMetadata)
    resources: dict[str, Resource] = Field(default_factory=dict)
    resources_by_path: dict[str, Resource] = Field(default_factory=dict)
    spine: list[Chapter] = Field(default_factory=list)
    nav_path: str | None = None
    ncx_path: str | None = None

    @property
    def package_dir(self) -> str:
        return self.package_path.rpartition("/")[0]

    def chapter_index(self, path: str) -> int | None:
        """Return the spine index of the resource at path, if any."""
        for chapter in self.spine:
            if chapter.path == path:
                return chapter.index
        return None
