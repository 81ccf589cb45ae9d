"""
dlcache HTTP API.

GET /download?url=... serves a media file from the cache, fetching it with
the external tool on a miss.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from dlcache import __version__
from dlcache.api.auth import require_api_key
from dlcache.cache.service import CacheService
from dlcache.config import Settings, get_settings
from dlcache.exceptions import CommitFailure, FetchError, FetchFailure, OutputNotFound
from dlcache.fetch.orchestrator import FetchOrchestrator
from dlcache.logging import get_logger
from dlcache.types import generate_id

logger = get_logger(__name__)

# Fetch failures are upstream problems (bad URL, tool error); the rest are ours
ERROR_RESPONSES: dict[type[FetchError], tuple[int, str]] = {
    FetchFailure: (502, "Failed to download video"),
    OutputNotFound: (500, "Failed to find downloaded file"),
    CommitFailure: (500, "Failed to store downloaded file"),
}


def create_app(
    settings: Settings | None = None,
    *,
    cache: CacheService | None = None,
    orchestrator: FetchOrchestrator | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings()).
        cache: Pre-built cache service (tests inject one with a fake clock).
        orchestrator: Pre-built orchestrator (tests inject a fake runner).
    """
    settings = settings or get_settings()
    cache = cache or CacheService.from_settings(settings)
    orchestrator = orchestrator or FetchOrchestrator.from_settings(settings, cache)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await cache.init(settings.cache_ttl)
        await asyncio.to_thread(orchestrator.reclaim_workspaces)
        try:
            yield
        finally:
            await cache.shutdown()

    app = FastAPI(
        title="dlcache",
        version=__version__,
        lifespan=lifespan,
        dependencies=[Depends(require_api_key)],
    )
    app.state.settings = settings
    app.state.cache = cache
    app.state.orchestrator = orchestrator

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(FetchError)
    async def fetch_error(request: Request, exc: FetchError) -> JSONResponse:
        status_code, message = ERROR_RESPONSES.get(type(exc), (500, "Failed to download or serve video"))
        logger.error("Download or file serving error", error=str(exc), code=exc.code)
        return JSONResponse({"error": message, "code": exc.code}, status_code=status_code)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "dlcache is running"

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok" if cache.initialized else "starting",
            "version": __version__,
            "cache": cache.stats().to_dict(),
        }

    @app.get("/download")
    async def download(url: str | None = Query(default=None)) -> FileResponse:
        if not url or not url.strip():
            raise HTTPException(status_code=400, detail="Missing video URL")

        outcome = await orchestrator.fetch(url.strip(), request_id=generate_id())
        entry = outcome.entry

        # Second pass over the workspace once the body has been sent
        return FileResponse(
            entry.file_path,
            media_type="application/octet-stream",
            filename=entry.display_name,
            headers={
                "X-Cache": "HIT" if outcome.cache_hit else "MISS",
                "X-Request-ID": outcome.request_id,
            },
            background=BackgroundTask(orchestrator.cleanup_workspace, outcome.workspace),
        )

    return app
