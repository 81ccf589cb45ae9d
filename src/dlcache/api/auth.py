"""
API key check.

When API_KEY is configured every request must carry it in the x-api-key
header; otherwise requests pass through unchecked.
"""

from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, Request

from dlcache.config import Settings


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> None:
    """FastAPI dependency rejecting requests without the configured key."""
    settings: Settings = request.app.state.settings
    if not settings.auth_enabled:
        return
    if x_api_key is None or not secrets.compare_digest(x_api_key, settings.API_KEY or ""):
        raise HTTPException(status_code=401, detail="Unauthorized")
