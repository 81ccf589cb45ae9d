"""
Single-flight call deduplication.

Concurrent calls for the same key share one underlying task; every caller
receives its result or its exception.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Collapses concurrent calls per key into one task.

    The shared task is shielded: cancelling one caller does not cancel the
    work the other callers are waiting on.
    """

    def __init__(self) -> None:
        self._calls: dict[str, asyncio.Task[T]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` for ``key`` unless a call is already in flight.

        Returns:
            Tuple of (result, shared) where shared is True if this caller
            joined a call started by someone else.
        """
        task = self._calls.get(key)
        shared = task is not None
        if task is None:
            task = asyncio.ensure_future(fn())
            self._calls[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task), shared

    def _forget(self, key: str, task: asyncio.Task[T]) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        # Mark the exception retrieved in case every caller went away
        if not task.cancelled():
            task.exception()
