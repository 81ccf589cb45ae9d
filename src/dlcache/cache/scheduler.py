"""
Background eviction scheduler.

Runs a sweep callable every ``period`` as a single cancellable asyncio task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

from dlcache.logging import get_logger

logger = get_logger(__name__)

SweepFn = Callable[[], Awaitable[int]]


class EvictionScheduler:
    """Recurring sweep task.

    At most one task is active per scheduler. ``start`` on a running
    scheduler cancels the old task before scheduling the new one.
    """

    def __init__(self, sweep: SweepFn, period: timedelta) -> None:
        self._sweep = sweep
        self._period = period
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def period(self) -> timedelta:
        return self._period

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start (or restart) the sweep loop."""
        await self.stop()
        if self._period <= timedelta(0):
            raise ValueError(f"Sweep period must be positive, got {self._period}")
        self._task = asyncio.create_task(self._loop(), name="dlcache-eviction")
        logger.info("Cache cleanup interval started", period_seconds=self._period.total_seconds())

    async def restart(self, period: timedelta) -> None:
        """Replace the period and restart the loop."""
        self._period = period
        await self.start()

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cache cleanup interval stopped")

    async def run_once(self) -> int:
        """Run a single sweep, logging instead of raising on failure."""
        logger.info("Running cache cleanup...")
        try:
            removed = await self._sweep()
        except Exception:
            logger.exception("Cache cleanup failed")
            return 0
        finally:
            self.runs += 1
        logger.info(f"Cache cleanup complete. Removed {removed} expired entries.", removed=removed)
        return removed

    async def _loop(self) -> None:
        interval = self._period.total_seconds()
        while True:
            await asyncio.sleep(interval)
            await self.run_once()
