"""Serve directories, files and EPUB books over HTTP."""

__version__ = "0.1.0"
