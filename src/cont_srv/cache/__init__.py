"""Parsed book cache."""

from cont_srv.cache.manager import BookCache, file_signature

__all__ = ["BookCache", "file_signature"]
