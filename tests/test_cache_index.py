"""
Tests for the in-memory cache index.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import FakeClock
from dlcache.cache.index import CacheIndex


class RecordingDeleter:
    """Deleter that records what the index let go of."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.calls: list[tuple[str, Path]] = []
        self.fail_for = fail_for or set()
        self._lock = threading.Lock()

    def __call__(self, key: str, path: Path) -> None:
        with self._lock:
            self.calls.append((key, path))
        if key in self.fail_for:
            raise OSError("disk on fire")


@pytest.fixture
def deleter() -> RecordingDeleter:
    return RecordingDeleter()


@pytest.fixture
def index(deleter: RecordingDeleter, clock: FakeClock) -> CacheIndex:
    return CacheIndex(timedelta(minutes=1), deleter=deleter, clock=clock)


class TestLookup:
    def test_miss_on_empty_index(self, index: CacheIndex) -> None:
        assert index.lookup("k") is None

    def test_hit_returns_inserted_entry(self, index: CacheIndex, clock: FakeClock) -> None:
        inserted = index.insert("k", Path("/c/k-a.bin"), "a.bin", identity="u1")

        found = index.lookup("k")

        assert found is inserted
        assert found.display_name == "a.bin"
        assert found.created_at == clock.now

    def test_fresh_just_before_ttl(self, index: CacheIndex, clock: FakeClock) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        clock.advance(seconds=59.999)

        assert index.lookup("k") is not None

    def test_stale_at_exactly_ttl_is_lazily_expired(
        self, index: CacheIndex, clock: FakeClock, deleter: RecordingDeleter
    ) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        clock.advance(minutes=1)

        assert index.lookup("k") is None
        assert "k" not in index
        assert deleter.calls == [("k", Path("/c/k-a.bin"))]


class TestInsert:
    def test_replace_discards_old_file(
        self, index: CacheIndex, deleter: RecordingDeleter
    ) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        index.insert("k", Path("/c/k-b.bin"), "b.bin")

        assert index.lookup("k").display_name == "b.bin"
        assert deleter.calls == [("k", Path("/c/k-a.bin"))]
        assert len(index) == 1

    def test_replace_with_same_path_keeps_file(
        self, index: CacheIndex, deleter: RecordingDeleter
    ) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        index.insert("k", Path("/c/k-a.bin"), "a.bin")

        assert deleter.calls == []

    def test_replace_resets_freshness(self, index: CacheIndex, clock: FakeClock) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        clock.advance(seconds=50)
        index.insert("k", Path("/c/k-a.bin"), "a.bin")
        clock.advance(seconds=50)

        assert index.lookup("k") is not None

    def test_is_live_path(self, index: CacheIndex) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")

        assert index.is_live_path(Path("/c/k-a.bin"))
        assert not index.is_live_path(Path("/c/other"))


class TestRemove:
    def test_remove_twice_is_a_noop(self, index: CacheIndex, deleter: RecordingDeleter) -> None:
        index.insert("k", Path("/c/k-a.bin"), "a.bin")

        assert index.remove("k") is not None
        assert index.remove("k") is None
        assert len(deleter.calls) == 1

    def test_remove_with_stale_expectation_leaves_replacement(self, index: CacheIndex) -> None:
        old = index.insert("k", Path("/c/k-a.bin"), "a.bin")
        new = index.insert("k", Path("/c/k-b.bin"), "b.bin")

        assert index.remove("k", expected=old) is None
        assert index.get("k") is new


class TestSweep:
    def test_sweep_removes_only_stale_entries(
        self, index: CacheIndex, clock: FakeClock, deleter: RecordingDeleter
    ) -> None:
        index.insert("old", Path("/c/old"), "old")
        clock.advance(seconds=40)
        index.insert("new", Path("/c/new"), "new")
        clock.advance(seconds=30)

        assert index.sweep_expired() == 1
        assert "old" not in index
        assert "new" in index
        assert deleter.calls == [("old", Path("/c/old"))]

    def test_sweep_on_empty_index(self, index: CacheIndex) -> None:
        assert index.sweep_expired() == 0

    def test_deleter_failure_does_not_abort_sweep(self, clock: FakeClock) -> None:
        deleter = RecordingDeleter(fail_for={"a"})
        index = CacheIndex(timedelta(minutes=1), deleter=deleter, clock=clock)
        for key in ("a", "b", "c"):
            index.insert(key, Path(f"/c/{key}"), key)
        clock.advance(minutes=2)

        assert index.sweep_expired() == 3
        assert len(index) == 0
        assert {key for key, _ in deleter.calls} == {"a", "b", "c"}


class TestConfiguration:
    def test_non_positive_ttl_rejected(self, deleter: RecordingDeleter) -> None:
        with pytest.raises(ValueError):
            CacheIndex(timedelta(0), deleter=deleter)

    def test_ttl_can_be_changed(self, index: CacheIndex, clock: FakeClock) -> None:
        index.insert("k", Path("/c/k"), "k")
        clock.advance(seconds=90)
        index.ttl = timedelta(minutes=2)

        assert index.lookup("k") is not None


class TestThreadSafety:
    def test_concurrent_inserts_and_sweeps(self, index: CacheIndex) -> None:
        def work(i: int) -> None:
            key = f"k{i % 10}"
            index.insert(key, Path(f"/c/{key}-{i}"), str(i))
            index.lookup(key)
            index.sweep_expired()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(500)))

        # One entry per key, each the last write that reached the index
        assert len(index) == 10
        for entry in index.entries():
            assert entry.file_path.name.startswith(entry.key)
