"""Response caching for fetchkit.

The package is layered bottom-up:

* :mod:`~fetchkit.cache.key` -- deterministic cache keys.
* :mod:`~fetchkit.cache.stores` -- raw key/value stores (dict, diskcache).
* :mod:`~fetchkit.cache.persistence` -- quota-bounded, namespaced
  backends built on a store.
* :mod:`~fetchkit.cache.factory` -- backend selection with fallback.
* :mod:`~fetchkit.cache.cache` -- :class:`ResponseCache`, the TTL cache
  consumed by the request orchestrator.
"""

from fetchkit.cache.cache import ResponseCache
from fetchkit.cache.factory import create_persistence, persistence_from_config
from fetchkit.cache.key import MUTATING_METHODS, derive_cache_key
from fetchkit.cache.persistence import (
    CachePersistence,
    LocalPersistence,
    MemoryPersistence,
    SessionPersistence,
)
from fetchkit.cache.stores import DictStore, DiskStore, KeyValueStore, session_store

__all__ = [
    "MUTATING_METHODS",
    "CachePersistence",
    "DictStore",
    "DiskStore",
    "KeyValueStore",
    "LocalPersistence",
    "MemoryPersistence",
    "ResponseCache",
    "SessionPersistence",
    "create_persistence",
    "derive_cache_key",
    "persistence_from_config",
    "session_store",
]
