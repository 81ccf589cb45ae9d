"""
Pytest configuration and fixtures for dlcache tests.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from dlcache.cache.service import CacheService
from dlcache.config import Settings, clear_settings_cache
from dlcache.exceptions import FetchFailure
from dlcache.fetch.base import FetchRunner


class FakeClock:
    """Controllable clock for freshness tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRunner(FetchRunner):
    """Fetch runner that writes a file instead of spawning a process."""

    def __init__(
        self,
        content: bytes = b"video-bytes",
        ext: str = "mp4",
        *,
        fail: bool = False,
        produce: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.content = content
        self.ext = ext
        self.fail = fail
        self.produce = produce
        self.delay = delay
        self.calls: list[str] = []

    async def run(self, identity: str, output_template: Path) -> None:
        self.calls.append(identity)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise FetchFailure(
                "Fetch process exited with status 1",
                context={"identity": identity, "returncode": 1},
            )
        if self.produce:
            target = Path(str(output_template).replace("%(ext)s", self.ext))
            target.write_bytes(self.content)


def write_file(directory: Path, name: str, content: bytes = b"data") -> Path:
    """Create a file (and its directory) and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(content)
    return path


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "CACHE_DURATION_MINUTES": "1",
        "CACHE_DIR": str(temp_dir / "cache"),
        "DOWNLOAD_DIR": str(temp_dir / "downloads"),
        "API_KEY": "",
        "FETCH_EXECUTABLE": "yt-dlp",
        "SINGLE_FLIGHT": "true",
        "RECONCILE_ON_STARTUP": "true",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance pointing at temp directories."""
    from dlcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture
async def cache_service(
    temp_dir: Path, clock: FakeClock
) -> AsyncGenerator[CacheService, None]:
    """Initialized cache service with a 1 minute TTL and a fake clock."""
    service = CacheService(temp_dir / "cache", ttl=timedelta(minutes=1), clock=clock)
    await service.init()
    yield service
    await service.shutdown()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
