"""Archive access, EPUB parsing, resolution and streaming."""
