"""
Disk store for cached artifacts.

Owns a single flat cache directory. Files are stored as
``<cache_dir>/<key>-<display_name>``; the key prefix keeps distinct
identities apart even when their display names repeat.
"""

from __future__ import annotations

import errno
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from dlcache.cache.keys import KEY_LENGTH, is_cache_key
from dlcache.exceptions import CommitFailure, DiskIOError
from dlcache.logging import get_logger

logger = get_logger(__name__)


class DiskStore:
    """Flat directory of cached files.

    Deletions never raise: "already gone" counts as success and any other
    failure is logged as a DiskIOError.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        """Initialize the disk store.

        Args:
            cache_dir: Directory that holds the cached artifacts.
        """
        self.cache_dir = Path(cache_dir)

    def ensure_directory(self) -> None:
        """Create the cache directory (and parents). Safe to call repeatedly."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str, display_name: str) -> Path:
        """Final on-disk location for an artifact."""
        # Only the base name: a display name must not escape the cache dir
        safe_name = Path(display_name).name or "artifact"
        return self.cache_dir / f"{key}-{safe_name}"

    def commit(self, temp_path: str | Path, key: str, display_name: str) -> Path:
        """Move a produced file into the cache directory.

        Args:
            temp_path: File produced by the fetch, outside the cache dir.
            key: Cache key of the identity the file was fetched for.
            display_name: Name presented to callers.

        Returns:
            The final path inside the cache directory.

        Raises:
            CommitFailure: If temp_path does not exist or the move fails.
        """
        source = Path(temp_path)
        target = self.path_for(key, display_name)

        if not source.is_file():
            raise CommitFailure(
                "Fetched file vanished before commit",
                context={"source": str(source), "target": str(target)},
            )

        self.ensure_directory()
        try:
            # Atomic within one filesystem, overwrites an existing target
            os.replace(source, target)
        except OSError as e:
            if not _same_device_error(e):
                raise CommitFailure(
                    f"Failed to move file into cache: {e}",
                    context={"source": str(source), "target": str(target)},
                ) from e
            target = self._copy_across_devices(source, target)

        logger.debug("Committed file to cache dir", source=str(source), target=str(target))
        return target

    def _copy_across_devices(self, source: Path, target: Path) -> Path:
        """Fallback when the workspace and the cache dir are on different filesystems.

        Copies to a sibling temp name, then renames over the target so readers
        never see a half-written file.
        """
        staging = target.with_name(f".{target.name}.partial")
        try:
            shutil.copyfile(source, staging)
            os.replace(staging, target)
        except OSError as e:
            self.delete(staging)
            raise CommitFailure(
                f"Failed to copy file into cache: {e}",
                context={"source": str(source), "target": str(target)},
            ) from e
        self.delete(source)
        return target

    def delete(self, path: str | Path) -> bool:
        """Remove a file.

        Returns:
            True if a file was removed, False if it was already gone or the
            removal failed (failure is logged, never raised).
        """
        file_path = Path(path)
        try:
            file_path.unlink()
        except FileNotFoundError:
            logger.info("Attempted to remove non-existent file (already gone)", path=str(file_path))
            return False
        except OSError as e:
            err = DiskIOError(
                "Error removing file from disk",
                context={"path": str(file_path), "operation": "delete", "errno": e.errno},
            )
            logger.error(str(err))
            return False

        logger.info("File removed from disk", path=str(file_path))
        return True

    def cached_files(self) -> list[Path]:
        """Files in the cache directory that follow the ``<key>-<name>`` layout."""
        if not self.cache_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.cache_dir.iterdir()
            if p.is_file()
            and len(p.name) > KEY_LENGTH + 1
            and p.name[KEY_LENGTH] == "-"
            and is_cache_key(p.name[:KEY_LENGTH])
        )

    def orphans(self, live_paths: Iterable[Path]) -> list[Path]:
        """Cached files not referenced by any live entry."""
        live = {Path(p).resolve() for p in live_paths}
        return [p for p in self.cached_files() if p.resolve() not in live]

    def purge_orphans(self, live_paths: Iterable[Path] = ()) -> int:
        """Delete cached files not referenced by any live entry.

        Returns:
            Number of files removed.
        """
        removed = 0
        for path in self.orphans(live_paths):
            if self.delete(path):
                removed += 1
        if removed:
            logger.info("Purged orphaned cache files", count=removed, cache_dir=str(self.cache_dir))
        return removed


def _same_device_error(err: OSError) -> bool:
    return err.errno == errno.EXDEV
