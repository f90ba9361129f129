"""Quota-bounded, namespaced persistence for cache entries.

:class:`CachePersistence` implements the whole storage contract on top of
a raw :class:`~fetchkit.cache.stores.KeyValueStore`. The three variants
differ only in the store they default to and their key namespace:

==========================  ==================  ===============================
Backend                     Default namespace   Store
==========================  ==================  ===============================
:class:`MemoryPersistence`  *(none)*            :class:`DictStore`
:class:`LocalPersistence`   ``fk_cache:``       :class:`DiskStore` in cache dir
:class:`SessionPersistence` ``fk_session:``     :func:`session_store`
==========================  ==================  ===============================

Quota discipline is identical everywhere. A ``set`` that would push the
namespace past ``max_size`` first triggers a cleanup pass removing
expired (and undecodable) records, then re-checks once; if the entry
still does not fit, :class:`~fetchkit.exceptions.QuotaExceededError` is
raised and nothing is written. Reads treat expired and undecodable
records as absent and remove them on the spot.

Every read-check-write sequence holds the backend's re-entrant lock, and
cleanup re-reads each record before deleting it, so concurrent writers
can never lose a live entry to a racing cleanup pass.

All calls are synchronous. The orchestrator makes them directly from
its coroutine, so disk-backed stores block the event loop for the
duration of each call. A quota check reads every record in the
namespace to total its size, which makes ``set`` linear in the number
of entries when ``max_size`` is set.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional

from fetchkit.cache.serialization import (
    SerializationError,
    deserialize_entry,
    estimate_size,
    serialize_entry,
)
from fetchkit.cache.stores import DictStore, DiskStore, KeyValueStore, session_store
from fetchkit.exceptions import QuotaExceededError
from fetchkit.models import CacheEntry

DEFAULT_MAX_SIZE = 5 * 1024 * 1024
_CHECK_KEY = "__fetchkit_write_check__"


class CachePersistence:
    """Namespaced cache entry storage with quota enforcement.

    Args:
        store: Raw key/value store holding serialised records.
        namespace: Prefix applied to every key. ``None`` selects the
            class's :attr:`default_namespace`.
        max_size: Quota in bytes for this namespace. ``None`` disables
            the quota.
        owns_store: Close *store* when this backend is closed.
    """

    backend_id = "base"
    default_namespace = ""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        namespace: Optional[str] = None,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
        owns_store: bool = False,
    ) -> None:
        self._store = store
        self._namespace = self.default_namespace if namespace is None else namespace
        self._max_size = max_size
        self._owns_store = owns_store
        self._lock = threading.RLock()

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    # ------------------------------------------------------------------ #
    # Key mapping
    # ------------------------------------------------------------------ #

    def _full_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def _own_keys(self) -> list[str]:
        """Raw store keys belonging to this namespace."""
        prefix = self._namespace
        return [k for k in self._store.iter_keys() if k.startswith(prefix)]

    # ------------------------------------------------------------------ #
    # Contract
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None``.

        Expired and undecodable records read as absent and are removed.
        """
        full_key = self._full_key(key)
        with self._lock:
            raw = self._store.get_item(full_key)
            if raw is None:
                return None
            try:
                entry = deserialize_entry(raw)
            except SerializationError:
                self._store.remove_item(full_key)
                return None
            if entry.is_expired():
                self._store.remove_item(full_key)
                return None
            return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Store *entry* under *key*, overwriting any previous record.

        Raises:
            QuotaExceededError: If the entry does not fit even after
                expired records were cleaned up.
            SerializationError: If the entry's value is not
                JSON-serialisable.
        """
        record = serialize_entry(entry)
        size = estimate_size(record)
        full_key = self._full_key(key)

        with self._lock:
            if not self._fits(full_key, size):
                self.cleanup()
                if not self._fits(full_key, size):
                    available = max(0, (self._max_size or 0) - self.get_size())
                    raise QuotaExceededError(
                        f"Storage quota exceeded: entry needs {size} bytes, "
                        f"{available} of {self._max_size} available",
                        key=key,
                        required=size,
                        available=available,
                    )
            self._store.set_item(full_key, record)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.remove_item(self._full_key(key))

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> set[str]:
        """Keys stored in this namespace, with the namespace stripped."""
        offset = len(self._namespace)
        return {k[offset:] for k in self._own_keys()}

    def clear(self) -> None:
        """Remove every record in this namespace and nothing else."""
        with self._lock:
            for full_key in self._own_keys():
                self._store.remove_item(full_key)

    def get_size(self) -> int:
        """Estimated bytes used by this namespace."""
        total = 0
        for full_key in self._own_keys():
            raw = self._store.get_item(full_key)
            if isinstance(raw, str):
                total += estimate_size(raw)
        return total

    def cleanup(self) -> int:
        """Remove expired and undecodable records. Returns how many were removed."""
        removed = 0
        with self._lock:
            now = time.time()
            for full_key in self._own_keys():
                raw = self._store.get_item(full_key)
                if raw is None:
                    continue
                try:
                    expired = deserialize_entry(raw).is_expired(now)
                except SerializationError:
                    expired = True
                if expired and self._store.remove_item(full_key):
                    removed += 1
        return removed

    def check_writable(self) -> None:
        """Write and remove a throwaway record; raises if the store is unusable."""
        full_key = self._full_key(_CHECK_KEY)
        self._store.set_item(full_key, "check")
        self._store.remove_item(full_key)

    def close(self) -> None:
        if self._owns_store:
            self._store.close()

    def stats(self) -> dict[str, object]:
        return {
            "backend": self.backend_id,
            "namespace": self._namespace,
            "entries": len(self._own_keys()),
            "size": self.get_size(),
            "max_size": self._max_size,
        }

    # ------------------------------------------------------------------ #
    # Quota
    # ------------------------------------------------------------------ #

    def _fits(self, full_key: str, size: int) -> bool:
        if self._max_size is None:
            return True
        current = self.get_size()
        previous = self._store.get_item(full_key)
        if isinstance(previous, str):
            current -= estimate_size(previous)
        return current + size <= self._max_size

    def __repr__(self) -> str:
        return f"<{type(self).__name__} namespace={self._namespace!r} max_size={self._max_size}>"


class MemoryPersistence(CachePersistence):
    """Ephemeral in-process backend. The quota is optional (``max_size=None``)."""

    backend_id = "memory"

    def __init__(
        self,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
        *,
        namespace: Optional[str] = None,
        store: Optional[KeyValueStore] = None,
    ) -> None:
        super().__init__(
            store if store is not None else DictStore(),
            namespace=namespace,
            max_size=max_size,
            owns_store=store is None,
        )


class LocalPersistence(CachePersistence):
    """Durable backend shared across sessions, namespaced under ``fk_cache:``.

    Args:
        store: Store to use. Defaults to a :class:`DiskStore` in
            *directory*, which defaults to ``<cache_dir>/store``.
        namespace: Key prefix; several instances with different
            namespaces can share one store.
        max_size: Quota in bytes for this namespace.
        directory: Directory for the default store.
    """

    backend_id = "local"
    default_namespace = "fk_cache:"

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        namespace: Optional[str] = None,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
        directory: Optional[str | Path] = None,
    ) -> None:
        owns_store = store is None
        if store is None:
            if directory is None:
                from fetchkit.config import get_cache_dir

                directory = get_cache_dir() / "store"
            store = DiskStore(directory)
        super().__init__(store, namespace=namespace, max_size=max_size, owns_store=owns_store)


class SessionPersistence(CachePersistence):
    """Session-scoped backend, namespaced under ``fk_session:``.

    Uses the process-wide :func:`~fetchkit.cache.stores.session_store`
    unless a store is injected. The shared session store is never closed
    by an individual backend.
    """

    backend_id = "session"
    default_namespace = "fk_session:"

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        namespace: Optional[str] = None,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
    ) -> None:
        super().__init__(
            store if store is not None else session_store(),
            namespace=namespace,
            max_size=max_size,
        )
