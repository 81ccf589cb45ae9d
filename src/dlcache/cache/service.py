"""
Cache service: the process-wide handle on the download cache.

Owns the disk store, the in-memory index and the eviction scheduler, with an
explicit init/shutdown lifecycle. Callers hold a reference to the service
instead of reaching for module-level state.

File deletions triggered by index changes run as background tasks. The index
change is visible immediately; the unlink happens later and its failures are
only logged.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import timedelta
from pathlib import Path

from dlcache.cache.disk_store import DiskStore
from dlcache.cache.index import CacheIndex, Clock
from dlcache.cache.keys import derive_key
from dlcache.cache.scheduler import EvictionScheduler
from dlcache.config import Settings
from dlcache.logging import get_logger
from dlcache.types import CacheEntry, CacheStats, utc_now

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


class CacheService:
    """Time-bounded disk cache keyed by request identity.

    Usage:
        service = CacheService(cache_dir, ttl=timedelta(minutes=30))
        await service.init()
        entry = service.lookup(url)
        if entry is None:
            entry = await service.insert(url, downloaded_file, "video.mp4")
        ...
        await service.shutdown()
    """

    def __init__(
        self,
        cache_dir: str | Path,
        ttl: timedelta = DEFAULT_TTL,
        *,
        reconcile_on_startup: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the service. Nothing touches disk until init().

        Args:
            cache_dir: Directory holding cached files.
            ttl: Freshness window.
            reconcile_on_startup: Delete files a previous process left in
                cache_dir the first time init() runs.
            clock: Source of "now" (tests inject a fake clock).
        """
        self.disk = DiskStore(cache_dir)
        self.index = CacheIndex(ttl, deleter=self._dispatch_delete, clock=clock)
        self.scheduler = EvictionScheduler(self.sweep, ttl / 2)
        self.reconcile_on_startup = reconcile_on_startup
        self._pending_deletes: set[asyncio.Task[None]] = set()
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheService:
        """Build a service from application settings."""
        return cls(
            settings.CACHE_DIR,
            ttl=settings.cache_ttl,
            reconcile_on_startup=settings.RECONCILE_ON_STARTUP,
        )

    @property
    def ttl(self) -> timedelta:
        return self.index.ttl

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self, ttl: timedelta | None = None) -> None:
        """Configure the TTL, prepare the directory and start the sweep.

        Calling init again re-configures the TTL and restarts the scheduler
        with the new period; the previous sweep task is cancelled first.
        """
        if ttl is not None:
            self.index.ttl = ttl

        await asyncio.to_thread(self.disk.ensure_directory)

        if self.reconcile_on_startup and not self._initialized:
            live = [entry.file_path for entry in self.index.entries()]
            purged = await asyncio.to_thread(self.disk.purge_orphans, live)
            if purged:
                logger.info("Reclaimed files left by a previous process", count=purged)

        await self.scheduler.restart(self.index.ttl / 2)
        self._initialized = True

        minutes = self.index.ttl.total_seconds() / 60
        logger.info(
            f"Cache initialized with duration: {minutes:g} minutes",
            cache_duration_minutes=minutes,
            cache_dir=str(self.disk.cache_dir),
        )

    async def shutdown(self) -> None:
        """Stop the sweep and wait for queued deletions to finish."""
        await self.scheduler.stop()
        await self.drain()
        self._initialized = False
        logger.info("Cache service shut down")

    def lookup(self, identity: str) -> CacheEntry | None:
        """Return the fresh entry for ``identity``, or None on a miss."""
        key = derive_key(identity)
        entry = self.index.lookup(key)
        if entry is None:
            return None
        if not entry.file_path.is_file():
            # Removed behind our back; the entry is useless without its file
            logger.warning("Cached file missing on disk, dropping entry", key=key, path=str(entry.file_path))
            self.index.remove(key, expected=entry)
            return None
        return entry

    async def insert(
        self,
        identity: str,
        temp_path: str | Path,
        display_name: str,
    ) -> CacheEntry:
        """Move ``temp_path`` into the cache and index it under ``identity``.

        Raises:
            CommitFailure: If the file cannot be moved into the cache dir.
        """
        key = derive_key(identity)
        async with self._lock_for(key):
            final_path = await asyncio.to_thread(self.disk.commit, temp_path, key, display_name)
            return self.index.insert(key, final_path, display_name, identity=identity)

    def remove(self, identity: str) -> bool:
        """Drop the entry for ``identity``. Returns False if there was none."""
        return self.index.remove(derive_key(identity)) is not None

    async def sweep(self) -> int:
        """Remove every stale entry. Used by the scheduler."""
        return self.index.sweep_expired()

    async def drain(self) -> None:
        """Wait until every dispatched deletion has completed."""
        while self._pending_deletes:
            await asyncio.gather(*list(self._pending_deletes), return_exceptions=True)

    def stats(self) -> CacheStats:
        return CacheStats(
            entries=len(self.index),
            ttl_seconds=self.index.ttl.total_seconds(),
            sweep_period_seconds=self.scheduler.period.total_seconds(),
            scheduler_running=self.scheduler.running,
            pending_deletes=len(self._pending_deletes),
            cache_dir=str(self.disk.cache_dir),
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    def _dispatch_delete(self, key: str, path: Path) -> None:
        """Index deleter: schedule removal of a file the index let go of."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (sync caller): delete inline
            if not self.index.is_live_path(path):
                self.disk.delete(path)
            return

        task = loop.create_task(self._delete_file(key, path))
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def _delete_file(self, key: str, path: Path) -> None:
        # Same lock as insert(): a commit reusing this path cannot interleave
        async with self._lock_for(key):
            if self.index.is_live_path(path):
                logger.debug("Skipping deletion of a path that is live again", path=str(path))
                return
            try:
                await asyncio.to_thread(self.disk.delete, path)
            except Exception:
                logger.exception("Background deletion failed", path=str(path))
