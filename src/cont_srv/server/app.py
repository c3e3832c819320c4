"""FastAPI application serving directories, files and EPUB books."""

import logging
import os
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response, StreamingResponse

from cont_srv.cache.manager import BookCache
from cont_srv.core.book import Book
from cont_srv.core.content_type import is_html_type
from cont_srv.core.errors import (
    ArchiveIOError,
    BookFormatError,
    ContentServerError,
    CorruptEntry,
    EntryNotFound,
    InvalidBookId,
    NotAnArchive,
    NotFound,
    OutOfBookAccess,
)
from cont_srv.core.pages import HTML_TYPE, render_reading_view, render_toc
from cont_srv.core.resolver import normalize_request_path, resolve
from cont_srv.core.streamer import ArchiveSource, BytesSource, StreamResult, stream
from cont_srv.core.urls import CONTENT_PREFIX, READ_PREFIX, TOC_PREFIX, decode_book_id, encode_book_id
from cont_srv.models.config import ServerConfig
from cont_srv.server.auth import BasicAuth
from cont_srv.server.files import resolve_under_root, serve_path

log = logging.getLogger(__name__)

CONFIG_ENV = "CONT_SRV_CONFIG"

CANNOT_OPEN_BOOK = "Cannot open book"


def to_response(result: StreamResult | Response) -> Response:
    """Turn a StreamResult into a Starlette response."""
    if isinstance(result, Response):
        return result
    if result.body is None:
        return Response(
            status_code=result.status,
            headers=result.headers,
            media_type=result.media_type,
        )
    return StreamingResponse(
        result.body,
        status_code=result.status,
        headers=result.headers,
        media_type=result.media_type,
    )


def _error_response(request: Request, exc: ContentServerError) -> Response:
    where = f"{request.method} {request.url.path}"
    if isinstance(exc, OutOfBookAccess):
        log.warning("Security: blocked %s from %s: %s", where, _client(request), exc)
        return PlainTextResponse("Forbidden", status_code=403)
    if isinstance(exc, InvalidBookId):
        return PlainTextResponse(str(exc), status_code=400)
    if isinstance(exc, (NotFound, EntryNotFound)):
        return PlainTextResponse(str(exc), status_code=404)
    if isinstance(exc, (BookFormatError, NotAnArchive)):
        log.info("%s: unusable book: %s", where, exc)
        return PlainTextResponse(CANNOT_OPEN_BOOK, status_code=422)
    if isinstance(exc, CorruptEntry):
        log.error("%s: corrupt archive entry: %s", where, exc)
        return PlainTextResponse(CANNOT_OPEN_BOOK, status_code=500)
    if isinstance(exc, ArchiveIOError):
        log.error("%s: archive unreadable", where, exc_info=exc)
        return PlainTextResponse("Internal Server Error", status_code=500)
    log.error("%s: unexpected error", where, exc_info=exc)
    return PlainTextResponse("Internal Server Error", status_code=500)


def _client(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def create_app(config: ServerConfig | None = None, cache: BookCache | None = None) -> FastAPI:
    """Build the application for a configuration.

    Args:
        config: Server configuration (defaults when omitted)
        cache: Book cache to share; a new one sized from config otherwise
    """
    if config is None:
        config = ServerConfig()
    root = config.root_dir.resolve()
    if cache is None:
        cache = BookCache(capacity=config.book_cache_size)

    dependencies = []
    if config.auth_enabled:
        dependencies.append(Depends(BasicAuth(config.user_name, config.password_hash)))

    app = FastAPI(
        title="cont-srv",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        dependencies=dependencies,
    )
    app.state.config = config
    app.state.cache = cache

    @app.exception_handler(ContentServerError)
    async def content_error_handler(request: Request, exc: ContentServerError) -> Response:
        return _error_response(request, exc)

    def book_file(book_path: str) -> tuple[Path, str]:
        path, relative = resolve_under_root(root, book_path)
        if not relative:
            raise NotFound("Not a book")
        return path, relative

    def stream_options(request: Request) -> dict:
        return {
            "range_header": request.headers.get("range"),
            "head": request.method == "HEAD",
            "threshold": config.stream_threshold,
            "chunk_size": config.chunk_size,
        }

    def reading_view(book: Book, book_id: str, relative: str, inner_path: str, request: Request):
        resolved = resolve(book, inner_path)
        if not is_html_type(resolved.mime_type):
            return stream(ArchiveSource(resolved), **stream_options(request))
        raw = book.archive.read_entry(resolved.path)
        page = render_reading_view(resolved, raw, book_id, relative)
        return stream(BytesSource(page, HTML_TYPE), **stream_options(request))

    @app.api_route(TOC_PREFIX + "/{book_path:path}", methods=["GET", "HEAD"])
    def epub_toc(book_path: str) -> Response:
        """Table of contents page of a book."""
        path, relative = book_file(book_path)
        with cache.open(path) as book:
            # Without nav or NCX the entries come from the spine
            if not book.toc.entries:
                raise NotFound("No contents found in the epub file")
            return HTMLResponse(render_toc(book, encode_book_id(relative)))

    @app.api_route(CONTENT_PREFIX + "/{book_id}/{inner_path:path}", methods=["GET", "HEAD"])
    def epub_cont(book_id: str, inner_path: str, request: Request) -> Response:
        """Raw bytes of a book resource, honoring Range."""
        path, _ = book_file(decode_book_id(book_id))
        inner_path = normalize_request_path(inner_path)
        with cache.open(path) as book:
            resolved = resolve(book, inner_path)
            return to_response(stream(ArchiveSource(resolved), **stream_options(request)))

    @app.api_route(READ_PREFIX + "/{book_id}/{inner_path:path}", methods=["GET", "HEAD"])
    def epub_read(book_id: str, inner_path: str, request: Request) -> Response:
        """Chapter with navigation bars and rewritten links; other resources raw."""
        path, relative = book_file(decode_book_id(book_id))
        inner_path = normalize_request_path(inner_path)
        with cache.open(path) as book:
            return to_response(reading_view(book, book_id, relative, inner_path, request))

    @app.api_route("/{url_path:path}", methods=["GET", "HEAD"])
    def fs_get(url_path: str, request: Request) -> Response:
        """Directory listing or file download."""
        return to_response(serve_path(root, url_path, request, config))

    return app


def create_app_from_env() -> FastAPI:
    """App factory for multi-worker servers; reads the config from the environment."""
    raw = os.environ.get(CONFIG_ENV)
    config = ServerConfig.model_validate_json(raw) if raw else ServerConfig()
    return create_app(config)
