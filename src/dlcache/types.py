"""
Core types for the download cache.

This module defines the data structures shared across the cache and fetch
layers:
- CacheEntry: frozen record of one cached artifact
- CacheStats: point-in-time snapshot of a cache service
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "req", "ws")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = uuid7().hex
    return f"{prefix}_{uid}" if prefix else uid


def is_generated_id(value: str) -> bool:
    """Whether ``value`` has the shape of an unprefixed generate_id() result."""
    return len(value) == 32 and all(c in "0123456789abcdef" for c in value)


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """One cached artifact.

    The backing file at ``file_path`` is owned by the cache index for as long
    as the entry is live; nothing else may delete it.
    """

    key: str
    file_path: Path
    created_at: datetime
    display_name: str
    identity: str = ""

    def age(self, now: datetime) -> timedelta:
        """Time elapsed since the entry was created."""
        return now - self.created_at

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        """Whether the entry is still inside the freshness window."""
        return self.age(now) < ttl

    def to_dict(self) -> dict[str, str]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "key": self.key,
            "file_path": str(self.file_path),
            "created_at": self.created_at.isoformat(),
            "display_name": self.display_name,
            "identity": self.identity,
        }


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache service state for health reporting."""

    entries: int
    ttl_seconds: float
    sweep_period_seconds: float
    scheduler_running: bool
    pending_deletes: int
    cache_dir: str

    def to_dict(self) -> dict[str, int | float | bool | str]:
        return {
            "entries": self.entries,
            "ttl_seconds": self.ttl_seconds,
            "sweep_period_seconds": self.sweep_period_seconds,
            "scheduler_running": self.scheduler_running,
            "pending_deletes": self.pending_deletes,
            "cache_dir": self.cache_dir,
        }
