"""Tests for the ResponseCache module."""

from __future__ import annotations

import asyncio
import sqlite3
import time

import pytest

from fetchkit.cache import LocalPersistence, MemoryPersistence, ResponseCache
from fetchkit.models import CacheEntry


@pytest.fixture()
def cache(memory_persistence):
    """Create a ResponseCache over an in-memory backend."""
    return ResponseCache(memory_persistence, default_ttl=300)


def _users_key(page: int = 1) -> str:
    return f'GET:https://api.example.com/users:{{"page":{page}}}:'


# ------------------------------------------------------------------ #
# Store and retrieve
# ------------------------------------------------------------------ #


class TestGetSet:
    def test_miss_returns_none(self, cache: ResponseCache) -> None:
        assert cache.get(_users_key()) is None

    def test_set_then_get(self, cache: ResponseCache) -> None:
        assert cache.set(_users_key(), [{"id": 1}]) is True
        assert cache.get(_users_key()) == [{"id": 1}]

    def test_cached_none_is_distinguished_from_miss(self, cache: ResponseCache) -> None:
        cache.set("k", None)
        assert not cache.is_miss(cache.lookup("k"))
        assert cache.is_miss(cache.lookup("other"))

    def test_distinct_pages_are_distinct_entries(self, cache: ResponseCache) -> None:
        cache.set(_users_key(1), ["a"])
        cache.set(_users_key(2), ["b"])
        assert cache.get(_users_key(1)) == ["a"]
        assert cache.get(_users_key(2)) == ["b"]
        assert len(cache.keys()) == 2

    def test_default_ttl_applies(self, memory_persistence: MemoryPersistence) -> None:
        cache = ResponseCache(memory_persistence, default_ttl=60)
        before = time.time()
        cache.set("k", 1)
        entry = memory_persistence.get("k")
        assert before + 60 <= entry.expires_at <= time.time() + 60

    def test_explicit_ttl_wins(self, cache: ResponseCache, memory_persistence) -> None:
        cache.set("k", 1, ttl=5)
        entry = memory_persistence.get("k")
        assert entry.expires_at - entry.created_at == pytest.approx(5)

    def test_no_ttl_never_expires(self, memory_persistence: MemoryPersistence) -> None:
        cache = ResponseCache(memory_persistence, default_ttl=None)
        cache.set("k", 1)
        assert memory_persistence.get("k").expires_at is None

    def test_expired_entry_is_a_miss(self, cache: ResponseCache, memory_persistence) -> None:
        memory_persistence.set(
            "k", CacheEntry(value=1, created_at=time.time() - 10, expires_at=time.time() - 1)
        )
        assert cache.get("k") is None


# ------------------------------------------------------------------ #
# Soft failures
# ------------------------------------------------------------------ #


class TestSoftFailures:
    def test_quota_exceeded_returns_false(self, quiet_output) -> None:
        cache = ResponseCache(MemoryPersistence(max_size=16))
        assert cache.set("k", "x" * 100) is False
        assert cache.get("k") is None

    def test_unserialisable_value_returns_false(self, cache: ResponseCache) -> None:
        assert cache.set("k", object()) is False
        assert cache.get("k") is None

    def test_backend_write_failure_returns_false(self, failing_store, verbose_output, capsys) -> None:
        cache = ResponseCache(MemoryPersistence(store=failing_store(writes=OSError("disk full"))))
        assert cache.set("k", {"id": 1}) is False
        assert "Response not cached: cache backend failed" in capsys.readouterr().err

    def test_closed_disk_store_write_returns_false(self, tmp_path, quiet_output) -> None:
        persistence = LocalPersistence(directory=tmp_path / "store")
        persistence.close()
        assert ResponseCache(persistence).set("k", 1) is False

    def test_backend_read_failure_is_a_miss(self, failing_store, verbose_output, capsys) -> None:
        store = failing_store(reads=sqlite3.OperationalError("database is locked"))
        cache = ResponseCache(MemoryPersistence(store=store))
        assert cache.is_miss(cache.lookup("k"))
        assert cache.get("k") is None
        assert "Cache read failed, treating as a miss: k" in capsys.readouterr().err

    def test_warning_text(self, verbose_output, capsys) -> None:
        cache = ResponseCache(MemoryPersistence(max_size=16))
        cache.set("k", "x" * 100)
        err = capsys.readouterr().err
        assert "Warning: Response not cached" in err
        assert "quota exceeded" in err


# ------------------------------------------------------------------ #
# Invalidation and maintenance
# ------------------------------------------------------------------ #


class TestInvalidation:
    def test_invalidate_one(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.keys() == ["b"]

    def test_invalidate_matching(self, cache: ResponseCache) -> None:
        cache.set(_users_key(1), 1)
        cache.set(_users_key(2), 2)
        cache.set("GET:https://api.example.com/teams::", 3)

        removed = cache.invalidate_matching(lambda key: "/users" in key)

        assert removed == 2
        assert cache.keys() == ["GET:https://api.example.com/teams::"]

    def test_clear(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.clear()
        assert cache.keys() == []

    def test_cleanup_removes_expired(self, cache: ResponseCache, memory_persistence) -> None:
        cache.set("live", 1)
        memory_persistence.set(
            "dead", CacheEntry(value=1, created_at=time.time() - 10, expires_at=time.time() - 1)
        )
        assert cache.cleanup() == 1
        assert cache.keys() == ["live"]

    def test_stats_include_default_ttl(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        stats = cache.stats()
        assert stats["entries"] == 1
        assert stats["default_ttl"] == 300
        assert stats["backend"] == "memory"


# ------------------------------------------------------------------ #
# Debug tracing
# ------------------------------------------------------------------ #


class TestTracing:
    def test_hit_and_miss_are_traced(self, cache: ResponseCache, verbose_output, capsys) -> None:
        cache.get("k")
        cache.set("k", 1)
        cache.get("k")
        err = capsys.readouterr().err
        assert "[debug] Cache miss: k" in err
        assert "[debug] Cache set: k" in err
        assert "[debug] Cache hit: k" in err

    def test_silent_by_default(self, cache: ResponseCache, capsys) -> None:
        cache.get("k")
        assert capsys.readouterr().err == ""


# ------------------------------------------------------------------ #
# Stale entries
# ------------------------------------------------------------------ #


class TestStaleEntries:
    def test_stale_time_sets_stale_at(self, cache: ResponseCache, memory_persistence) -> None:
        cache.set("k", 1, stale_time=10)
        entry = memory_persistence.get("k")
        assert entry.stale_at - entry.created_at == pytest.approx(10)
        assert not entry.is_stale()

    def test_without_stale_time_entries_stay_fresh(self, cache: ResponseCache) -> None:
        cache.set("k", 1)
        assert not cache.lookup_entry("k").is_stale()

    def test_stale_entry_is_still_a_hit(self, cache: ResponseCache) -> None:
        cache.set("k", 1, stale_time=0)
        entry = cache.lookup_entry("k")
        assert entry.value == 1
        assert entry.is_stale()

    def test_validator_rejects_and_removes(self, cache: ResponseCache) -> None:
        cache.set("k", {"version": 1})
        assert cache.lookup_entry("k", validator=lambda value: value["version"] == 2) is None
        assert cache.keys() == []

    def test_stale_hit_is_traced(self, cache: ResponseCache, verbose_output, capsys) -> None:
        cache.set("k", 1, stale_time=0)
        cache.get("k")
        assert "[debug] Cache hit (stale): k" in capsys.readouterr().err


# ------------------------------------------------------------------ #
# Background revalidation
# ------------------------------------------------------------------ #


class _Refresh:
    """Refresh coroutine function that writes the cache and counts its runs."""

    def __init__(self, cache: ResponseCache, key: str, value="new", error=None) -> None:
        self.cache = cache
        self.key = key
        self.value = value
        self.error = error
        self.gate = asyncio.Event()
        self.gate.set()
        self.started: list[float] = []

    @property
    def runs(self) -> int:
        return len(self.started)

    async def __call__(self):
        self.started.append(time.monotonic())
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.cache.set(self.key, self.value)
        return self.value


class TestRevalidation:
    @pytest.mark.asyncio
    async def test_refresh_runs_in_background(self, cache: ResponseCache) -> None:
        cache.set("k", "old", stale_time=0)
        refresh = _Refresh(cache, "k")

        assert cache.revalidate("k", refresh) is True
        assert cache.is_revalidating("k")
        assert refresh.runs == 0

        await cache.wait_for_revalidations()
        assert refresh.runs == 1
        assert cache.get("k") == "new"
        assert not cache.is_revalidating("k")

    @pytest.mark.asyncio
    async def test_one_refresh_per_key(self, cache: ResponseCache) -> None:
        refresh = _Refresh(cache, "k")
        refresh.gate.clear()

        assert cache.revalidate("k", refresh) is True
        assert cache.revalidate("k", refresh) is False
        assert cache.revalidate("other", _Refresh(cache, "other")) is True
        assert sorted(cache.revalidating_keys()) == ["k", "other"]
        assert cache.stats()["revalidating"] == 2

        refresh.gate.set()
        await cache.wait_for_revalidations()
        assert refresh.runs == 1
        assert cache.revalidating_keys() == []

    @pytest.mark.asyncio
    async def test_failure_keeps_stale_value(
        self, cache: ResponseCache, verbose_output, capsys
    ) -> None:
        cache.set("k", "old", stale_time=0)
        cache.revalidate("k", _Refresh(cache, "k", error=RuntimeError("boom")))
        await cache.wait_for_revalidations()

        assert cache.get("k") == "old"
        assert "Warning: Revalidation of k failed: boom" in capsys.readouterr().err
        assert not cache.is_revalidating("k")

    @pytest.mark.asyncio
    async def test_throttle_drops_early_refreshes(self, cache: ResponseCache) -> None:
        cache.revalidate("k", _Refresh(cache, "k"), throttle=60)
        await cache.wait_for_revalidations()

        later = _Refresh(cache, "k")
        assert cache.revalidate("k", later, throttle=60) is False
        assert cache.revalidate("k", later) is True
        await cache.wait_for_revalidations()
        assert later.runs == 1

    @pytest.mark.asyncio
    async def test_debounce_pushes_back_the_start(self, cache: ResponseCache) -> None:
        refresh = _Refresh(cache, "k")
        assert cache.revalidate("k", refresh, debounce=0.05) is True

        await asyncio.sleep(0.03)
        assert refresh.runs == 0
        pushed_at = time.monotonic()
        assert cache.revalidate("k", refresh, debounce=0.05) is False

        await cache.wait_for_revalidations()
        assert refresh.runs == 1
        assert refresh.started[0] - pushed_at >= 0.04

    @pytest.mark.asyncio
    async def test_cancel_pending_refreshes(self, cache: ResponseCache) -> None:
        refresh = _Refresh(cache, "k")
        refresh.gate.clear()
        cache.revalidate("k", refresh)
        await asyncio.sleep(0)

        cache.cancel_revalidations()
        await cache.wait_for_revalidations()

        assert refresh.runs == 1
        assert cache.get("k") is None
        assert not cache.is_revalidating("k")
