"""Data models."""

from cont_srv.models.config import ServerConfig
from cont_srv.models.epub import (
    BookMetadata,
    BookStructure,
    Chapter,
    Resource,
    TocNode,
    TocSource,
    TocTarget,
    TocTree,
)

__all__ = [
    # Book models
    "Resource",
    "Chapter",
    "BookMetadata",
    "BookStructure",
    # Navigation models
    "TocTarget",
    "TocNode",
    "TocSource",
    "TocTree",
    # Configuration
    "ServerConfig",
]
