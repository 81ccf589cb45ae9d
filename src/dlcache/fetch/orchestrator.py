"""
Fetch orchestrator: cache miss -> external fetch -> cache insert.

Per request:

    derive key -> lookup
        hit  -> serve
        miss -> isolate workspace -> run fetch -> locate output
                -> commit + index insert -> cleanup workspace -> serve
    serve -> cleanup workspace again (deferred to after the response is sent)

The fetch task removes its workspace whether it succeeds or fails; nothing
is served from it. Failures propagate as a FetchError subclass.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, replace
from pathlib import Path

from dlcache.cache.keys import derive_key
from dlcache.cache.service import CacheService
from dlcache.config import Settings
from dlcache.exceptions import OutputNotFound
from dlcache.fetch.base import FetchRunner
from dlcache.fetch.runner import YtDlpRunner
from dlcache.fetch.singleflight import SingleFlight
from dlcache.logging import get_logger, log_context
from dlcache.types import CacheEntry, generate_id, is_generated_id

logger = get_logger(__name__)

# Leftovers of interrupted downloads, never the artifact itself
PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp", ".tmp")


@dataclass(frozen=True)
class FetchOutcome:
    """Result of serving one request identity."""

    entry: CacheEntry
    cache_hit: bool
    request_id: str
    workspace: Path | None = None
    shared: bool = False


class FetchOrchestrator:
    """Serves request identities from the cache, fetching on a miss.

    With single_flight enabled, concurrent misses for one identity share a
    single external fetch. Without it every miss runs its own fetch and the
    cache keeps whichever insert lands last.
    """

    def __init__(
        self,
        cache: CacheService,
        runner: FetchRunner,
        download_dir: str | Path,
        *,
        single_flight: bool = True,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            cache: Cache service used for lookups and inserts.
            runner: External fetch capability.
            download_dir: Root under which per-request workspaces are created.
            single_flight: Deduplicate concurrent misses per identity.
        """
        self.cache = cache
        self.runner = runner
        self.download_dir = Path(download_dir)
        self.single_flight = single_flight
        self._flights: SingleFlight[FetchOutcome] = SingleFlight()

    @classmethod
    def from_settings(cls, settings: Settings, cache: CacheService) -> FetchOrchestrator:
        runner = YtDlpRunner(
            executable=settings.FETCH_EXECUTABLE,
            format=settings.FETCH_FORMAT,
        )
        return cls(
            cache,
            runner,
            settings.DOWNLOAD_DIR,
            single_flight=settings.SINGLE_FLIGHT,
        )

    async def fetch(self, identity: str, request_id: str | None = None) -> FetchOutcome:
        """Return the cached artifact for ``identity``, fetching it on a miss.

        Raises:
            FetchFailure: The external fetch failed or could not start.
            OutputNotFound: The fetch succeeded but produced no file.
            CommitFailure: The file could not be moved into the cache.
        """
        request_id = request_id or generate_id()
        key = derive_key(identity)

        with log_context(request_id=request_id, cache_key=key):
            entry = self.cache.lookup(identity)
            if entry is not None:
                return FetchOutcome(entry=entry, cache_hit=True, request_id=request_id)

            if not self.single_flight:
                return await self._fetch_into_cache(identity, request_id)

            outcome, shared = await self._flights.do(
                key, lambda: self._fetch_into_cache(identity, request_id)
            )
            if shared:
                logger.info("Joined in-flight fetch", leader_request_id=outcome.request_id)
                return replace(outcome, request_id=request_id, shared=True)
            return outcome

    async def _fetch_into_cache(self, identity: str, request_id: str) -> FetchOutcome:
        workspace = await asyncio.to_thread(self.isolate_workspace, request_id)
        # The artifact is served from the cache dir, so the workspace goes as
        # soon as insert returns, even if every waiter has been cancelled
        try:
            await self.runner.run(identity, workspace / f"{request_id}.%(ext)s")
            artifact = await asyncio.to_thread(self.locate_output, workspace, request_id)
            entry = await self.cache.insert(identity, artifact, artifact.name)
        finally:
            await self.cleanup_workspace(workspace)

        return FetchOutcome(
            entry=entry,
            cache_hit=False,
            request_id=request_id,
            workspace=workspace,
        )

    def isolate_workspace(self, request_id: str) -> Path:
        """Create the request-scoped temporary directory."""
        workspace = self.download_dir / request_id
        workspace.mkdir(parents=True, exist_ok=False)
        return workspace

    def locate_output(self, workspace: Path, request_id: str) -> Path:
        """Find the artifact the fetch produced in ``workspace``.

        Raises:
            OutputNotFound: If no file named after the request id exists.
        """
        candidates = sorted(
            p
            for p in workspace.iterdir()
            if p.is_file()
            and p.name.startswith(request_id)
            and not p.name.endswith(PARTIAL_SUFFIXES)
        )
        if not candidates:
            raise OutputNotFound(
                "Failed to find downloaded file",
                context={"workspace": str(workspace), "request_id": request_id},
            )
        if len(candidates) > 1:
            logger.warning(
                "Fetch produced several files, using the first",
                files=[p.name for p in candidates],
            )
        return candidates[0]

    async def cleanup_workspace(self, workspace: Path | None) -> None:
        """Remove a workspace directory. Best effort, never raises."""
        if workspace is None:
            return
        await asyncio.to_thread(shutil.rmtree, workspace, ignore_errors=True)
        logger.debug("Cleaned up workspace", workspace=str(workspace))

    def reclaim_workspaces(self) -> int:
        """Remove workspaces left behind by a previous process.

        Only directories named like a generated request id are touched; anything
        else in the download dir is left alone. Only safe while no fetch is
        running (at startup).
        """
        if not self.download_dir.is_dir():
            return 0
        removed = 0
        for child in self.download_dir.iterdir():
            if child.is_dir() and is_generated_id(child.name):
                shutil.rmtree(child, ignore_errors=True)
                removed += 1
        if removed:
            logger.info("Removed stale workspaces", count=removed, download_dir=str(self.download_dir))
        return removed
