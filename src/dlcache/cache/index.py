"""
In-memory cache index.

Maps cache key -> CacheEntry. Every map mutation happens under a single
lock; backing-file removal is handed to a ``deleter`` callback outside the
lock, so index changes are visible immediately while disk I/O happens
elsewhere.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from dlcache.logging import get_logger
from dlcache.types import CacheEntry, utc_now

logger = get_logger(__name__)

# Receives (key, path) of a file the index no longer references
Deleter = Callable[[str, Path], None]
Clock = Callable[[], datetime]


class CacheIndex:
    """Lock-guarded mapping from cache key to entry metadata.

    Thread-safe. Safe to use from the event loop and from worker threads.
    """

    def __init__(
        self,
        ttl: timedelta,
        deleter: Deleter,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the index.

        Args:
            ttl: Freshness window.
            deleter: Called with (key, path) for every backing file that
                must be removed. Must not raise; failures are logged here
                if it does.
            clock: Source of "now" for creation and freshness checks.
        """
        if ttl <= timedelta(0):
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._ttl = ttl
        self._deleter = deleter
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @ttl.setter
    def ttl(self, value: timedelta) -> None:
        if value <= timedelta(0):
            raise ValueError(f"ttl must be positive, got {value}")
        self._ttl = value

    def now(self) -> datetime:
        return self._clock()

    def is_fresh(self, entry: CacheEntry, now: datetime | None = None) -> bool:
        return entry.is_fresh(now or self._clock(), self._ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` regardless of freshness."""
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries."""
        with self._lock:
            return list(self._entries.values())

    def is_live_path(self, path: Path) -> bool:
        """Whether any entry currently references ``path``."""
        with self._lock:
            return any(entry.file_path == path for entry in self._entries.values())

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the fresh entry for ``key``, or None on a miss.

        A stale entry is dropped from the index and its file handed to the
        deleter before returning None.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.info("Cache miss", key=key)
                return None
            if entry.is_fresh(self._clock(), self._ttl):
                logger.info("Cache hit: file is valid", key=key, path=str(entry.file_path))
                return entry
            del self._entries[key]

        logger.info("Cache hit: file expired, marking for deletion", key=key, path=str(entry.file_path))
        self._discard(entry)
        return None

    def insert(
        self,
        key: str,
        path: Path,
        display_name: str,
        identity: str = "",
    ) -> CacheEntry:
        """Store a new entry for ``key``, replacing any existing one.

        Last write wins. The replaced entry's file is handed to the deleter
        unless the new entry reuses the same path.
        """
        entry = CacheEntry(
            key=key,
            file_path=Path(path),
            created_at=self._clock(),
            display_name=display_name,
            identity=identity,
        )
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = entry

        if previous is not None and previous.file_path != entry.file_path:
            logger.info("Replacing cache entry", key=key, old_path=str(previous.file_path))
            self._discard(previous)

        logger.info("File added to cache", key=key, path=str(entry.file_path), identity=identity)
        return entry

    def remove(self, key: str, expected: CacheEntry | None = None) -> CacheEntry | None:
        """Drop the entry for ``key`` and delete its file. Absent key is a no-op.

        Args:
            key: Cache key.
            expected: If given, only remove when the current entry is this
                one, so a concurrent replacement is left alone.

        Returns:
            The removed entry, or None if nothing was removed.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or (expected is not None and entry is not expected):
                return None
            del self._entries[key]
        self._discard(entry)
        return entry

    def sweep_expired(self) -> int:
        """Remove every stale entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            removed = [
                entry
                for entry in self._entries.values()
                if not entry.is_fresh(now, self._ttl)
            ]
            for entry in removed:
                del self._entries[entry.key]

        for entry in removed:
            logger.info("Expired cache entry found during cleanup", key=entry.key, path=str(entry.file_path))
            self._discard(entry)
        return len(removed)

    def clear(self) -> int:
        """Drop every entry and delete its file."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            self._discard(entry)
        return len(entries)

    def _discard(self, entry: CacheEntry) -> None:
        try:
            self._deleter(entry.key, entry.file_path)
        except Exception:
            logger.exception("Failed to dispatch file deletion", key=entry.key, path=str(entry.file_path))
