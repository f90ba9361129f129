"""Tests for fetchkit.cache.persistence -- quota, expiry and namespacing."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from fetchkit.cache.persistence import (
    LocalPersistence,
    MemoryPersistence,
    SessionPersistence,
)
from fetchkit.cache.serialization import estimate_size, serialize_entry
from fetchkit.cache.stores import DictStore
from fetchkit.exceptions import QuotaExceededError
from fetchkit.models import CacheEntry


def _live(value: object = "v", ttl: float = 60.0) -> CacheEntry:
    return CacheEntry.create(value, ttl)


def _expired(value: object = "old") -> CacheEntry:
    return CacheEntry(value=value, created_at=time.time() - 20, expires_at=time.time() - 10)


def _record_size(entry: CacheEntry) -> int:
    return estimate_size(serialize_entry(entry))


# ------------------------------------------------------------------ #
# Basic contract
# ------------------------------------------------------------------ #


class TestContract:
    def test_set_get_delete(self, memory_persistence: MemoryPersistence) -> None:
        memory_persistence.set("k", _live({"a": 1}))
        entry = memory_persistence.get("k")
        assert entry is not None and entry.value == {"a": 1}
        assert memory_persistence.has("k")

        assert memory_persistence.delete("k") is True
        assert memory_persistence.get("k") is None
        assert memory_persistence.delete("k") is False

    def test_overwrite(self, memory_persistence: MemoryPersistence) -> None:
        memory_persistence.set("k", _live(1))
        memory_persistence.set("k", _live(2))
        assert memory_persistence.get("k").value == 2
        assert memory_persistence.keys() == {"k"}

    def test_expired_entry_reads_as_absent_and_is_removed(self) -> None:
        store = DictStore()
        backend = MemoryPersistence(store=store)
        backend.set("k", _expired())

        assert backend.get("k") is None
        assert not backend.has("k")
        assert store.iter_keys() == []

    def test_undecodable_record_reads_as_absent(self) -> None:
        store = DictStore()
        backend = MemoryPersistence(store=store)
        store.set_item("k", "{not json")

        assert backend.get("k") is None
        assert store.get_item("k") is None

    def test_never_expiring_entry(self, memory_persistence: MemoryPersistence) -> None:
        memory_persistence.set("k", CacheEntry.create("forever", None))
        assert memory_persistence.get("k").value == "forever"

    def test_get_size_is_sum_of_records(self, memory_persistence: MemoryPersistence) -> None:
        a, b = _live("a"), _live("bb")
        memory_persistence.set("a", a)
        memory_persistence.set("b", b)
        assert memory_persistence.get_size() == _record_size(a) + _record_size(b)

    def test_stats(self, memory_persistence: MemoryPersistence) -> None:
        memory_persistence.set("k", _live())
        stats = memory_persistence.stats()
        assert stats["backend"] == "memory"
        assert stats["entries"] == 1
        assert stats["size"] == memory_persistence.get_size()
        assert stats["max_size"] == memory_persistence.max_size


# ------------------------------------------------------------------ #
# Cleanup
# ------------------------------------------------------------------ #


class TestCleanup:
    def test_removes_expired_and_undecodable_only(self) -> None:
        store = DictStore()
        backend = MemoryPersistence(store=store)
        backend.set("live", _live())
        backend.set("old", _expired())
        store.set_item("junk", "???")

        assert backend.cleanup() == 2
        assert backend.keys() == {"live"}

    def test_nothing_to_remove(self, memory_persistence: MemoryPersistence) -> None:
        memory_persistence.set("k", _live())
        assert memory_persistence.cleanup() == 0


# ------------------------------------------------------------------ #
# Quota
# ------------------------------------------------------------------ #


class TestQuota:
    def test_entry_that_fits(self) -> None:
        entry = _live("x")
        backend = MemoryPersistence(max_size=_record_size(entry))
        backend.set("k", entry)
        assert backend.has("k")

    def test_too_large_raises_and_writes_nothing(self) -> None:
        backend = MemoryPersistence(max_size=10)
        with pytest.raises(QuotaExceededError) as info:
            backend.set("big", _live("x" * 100))

        assert info.value.key == "big"
        assert info.value.required > 10
        assert info.value.available == 10
        assert backend.keys() == set()

    def test_cleanup_makes_room(self) -> None:
        old = _expired("o" * 50)
        new = _live("n" * 50)
        backend = MemoryPersistence(max_size=_record_size(new) + 5)
        # Bypass the quota to seed an expired record that fills the budget.
        backend._store.set_item("old", serialize_entry(old))

        backend.set("new", new)
        assert backend.keys() == {"new"}

    def test_live_entries_are_never_evicted(self) -> None:
        first = _live("a" * 50)
        backend = MemoryPersistence(max_size=_record_size(first) + 10)
        backend.set("first", first)

        with pytest.raises(QuotaExceededError):
            backend.set("second", _live("b" * 50))
        assert backend.get("first").value == "a" * 50

    def test_overwrite_does_not_count_old_record(self) -> None:
        entry = _live("a" * 40)
        backend = MemoryPersistence(max_size=_record_size(entry) + 5)
        backend.set("k", entry)
        backend.set("k", _live("b" * 40))
        assert backend.get("k").value == "b" * 40

    def test_no_quota(self) -> None:
        backend = MemoryPersistence(max_size=None)
        backend.set("k", _live("x" * 10_000))
        assert backend.has("k")


# ------------------------------------------------------------------ #
# Namespacing
# ------------------------------------------------------------------ #


class TestNamespaces:
    def test_defaults(self, tmp_path: Path) -> None:
        local = LocalPersistence(directory=tmp_path / "local")
        session = SessionPersistence(store=DictStore())
        try:
            assert local.namespace == "fk_cache:"
            assert session.namespace == "fk_session:"
            assert MemoryPersistence().namespace == ""
        finally:
            local.close()

    def test_keys_are_prefixed_in_store_and_stripped_on_read(self) -> None:
        store = DictStore()
        backend = SessionPersistence(store=store)
        backend.set("GET:/a::", _live())

        assert store.iter_keys() == ["fk_session:GET:/a::"]
        assert backend.keys() == {"GET:/a::"}

    def test_clear_only_touches_own_namespace(self) -> None:
        store = DictStore()
        store.set_item("unrelated", "keep me")
        ours = MemoryPersistence(store=store, namespace="a:")
        theirs = MemoryPersistence(store=store, namespace="b:")
        ours.set("k", _live())
        theirs.set("k", _live())

        ours.clear()

        assert ours.keys() == set()
        assert theirs.keys() == {"k"}
        assert store.get_item("unrelated") == "keep me"

    def test_quota_is_per_namespace(self) -> None:
        store = DictStore()
        entry = _live("z" * 30)
        limit = _record_size(entry)
        ours = MemoryPersistence(limit, store=store, namespace="a:")
        theirs = MemoryPersistence(limit, store=store, namespace="b:")

        ours.set("k", entry)
        theirs.set("k", entry)
        assert ours.get_size() == theirs.get_size() == limit


# ------------------------------------------------------------------ #
# Durability and lifecycle
# ------------------------------------------------------------------ #


class TestLifecycle:
    def test_local_is_durable(self, tmp_path: Path) -> None:
        first = LocalPersistence(directory=tmp_path / "store")
        first.set("k", _live("kept"))
        first.close()

        second = LocalPersistence(directory=tmp_path / "store")
        try:
            assert second.get("k").value == "kept"
        finally:
            second.close()

    def test_local_defaults_to_cache_dir(self, isolated_config: Path) -> None:
        backend = LocalPersistence()
        try:
            backend.check_writable()
        finally:
            backend.close()
        assert (isolated_config / "cache" / "fetchkit" / "store").is_dir()

    def test_injected_store_is_not_closed(self) -> None:
        store = DictStore()
        backend = MemoryPersistence(store=store)
        backend.set("k", _live())
        backend.close()
        assert store.iter_keys() == ["k"]

    def test_write_check_leaves_nothing_behind(self) -> None:
        store = DictStore()
        MemoryPersistence(store=store).check_writable()
        assert store.iter_keys() == []
