"""Response cache used by the request orchestrator.

:class:`ResponseCache` sits between the orchestrator and a
:class:`~fetchkit.cache.persistence.CachePersistence` backend. Keys are
computed by :func:`~fetchkit.cache.key.derive_cache_key` before they get
here; this layer stores and retrieves values with a TTL and an optional
stale time, and schedules background revalidation of stale entries.

The cache never fails a request. A failed write is reported as a
warning and :meth:`ResponseCache.set` returns ``False``; the caller
still gets the fetched value. A failed read is logged at debug level and
treated as a miss.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

from fetchkit.cache.persistence import CachePersistence
from fetchkit.cache.serialization import SerializationError
from fetchkit.exceptions import QuotaExceededError
from fetchkit.models import CacheEntry
from fetchkit.output import debug, warning

_MISSING = object()

Refresh = Callable[[], Awaitable[Any]]


class ResponseCache:
    """TTL cache of response values over a persistence backend.

    Args:
        persistence: Backend that physically stores the entries.
        default_ttl: TTL in seconds used when :meth:`set` gets none.

    Example::

        from fetchkit.cache import ResponseCache, MemoryPersistence

        cache = ResponseCache(MemoryPersistence(), default_ttl=60)
        cache.set("GET:https://api.example.com/users::", [{"id": 1}])
        users = cache.get("GET:https://api.example.com/users::")
    """

    def __init__(self, persistence: CachePersistence, default_ttl: Optional[float] = 300.0) -> None:
        self._persistence = persistence
        self._default_ttl = default_ttl
        self._revalidating: dict[str, asyncio.Future] = {}
        self._debounce_until: dict[str, float] = {}
        self._last_revalidation: dict[str, float] = {}

    @property
    def persistence(self) -> CachePersistence:
        return self._persistence

    # ------------------------------------------------------------------ #
    # Reads and writes
    # ------------------------------------------------------------------ #

    def lookup_entry(
        self, key: str, validator: Optional[Callable[[Any], bool]] = None
    ) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None`` on a miss.

        Args:
            key: Cache key.
            validator: Called with the cached value; an entry it rejects
                is removed and reported as a miss.
        """
        try:
            entry = self._persistence.get(key)
        except Exception as exc:
            debug(f"Cache read failed, treating as a miss: {key} ({exc!r})")
            return None

        if entry is None:
            debug(f"Cache miss: {key}")
            return None
        if validator is not None and not validator(entry.value):
            debug(f"Cache entry failed validation: {key}")
            self._discard(key)
            return None

        debug(f"Cache hit (stale): {key}" if entry.is_stale() else f"Cache hit: {key}")
        return entry

    def lookup(self, key: str) -> Any:
        """Return the cached value for *key*, or a sentinel on a miss.

        Unlike :meth:`get` this distinguishes a cached ``None`` from a
        miss; compare the result against :meth:`is_miss`.
        """
        entry = self.lookup_entry(key)
        return _MISSING if entry is None else entry.value

    @staticmethod
    def is_miss(value: Any) -> bool:
        return value is _MISSING

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for *key*, or ``None`` on a miss."""
        value = self.lookup(key)
        return None if value is _MISSING else value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        stale_time: Optional[float] = None,
    ) -> bool:
        """Store *value* under *key*.

        Args:
            key: Cache key.
            value: JSON-serialisable response value.
            ttl: Lifetime in seconds; defaults to the cache's
                ``default_ttl``. ``None`` on both never expires.
            stale_time: Seconds until the entry is due for revalidation.
                ``None`` keeps it fresh until it expires.

        Returns:
            ``True`` if the value was stored, ``False`` if the write was
            rejected (quota exceeded, value not serialisable, or the
            backend failed).
        """
        effective_ttl = self._default_ttl if ttl is None else ttl
        try:
            self._persistence.set(key, CacheEntry.create(value, effective_ttl, stale_time))
        except (QuotaExceededError, SerializationError) as exc:
            warning(f"Response not cached: {exc}")
            return False
        except Exception as exc:
            warning(f"Response not cached: cache backend failed ({exc!r})")
            return False
        debug(f"Cache set: {key} (ttl={effective_ttl})")
        return True

    def _discard(self, key: str) -> None:
        try:
            self._persistence.delete(key)
        except Exception as exc:
            debug(f"Cache delete failed: {key} ({exc!r})")

    # ------------------------------------------------------------------ #
    # Management
    # ------------------------------------------------------------------ #

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns whether anything was removed."""
        return self._persistence.delete(key)

    def invalidate_matching(self, predicate: Callable[[str], bool]) -> int:
        """Remove every entry whose key satisfies *predicate*.

        Returns:
            The number of entries removed.
        """
        removed = 0
        for key in sorted(self._persistence.keys()):
            if predicate(key) and self._persistence.delete(key):
                removed += 1
        return removed

    def keys(self) -> list[str]:
        return sorted(self._persistence.keys())

    def clear(self) -> None:
        self._persistence.clear()

    def cleanup(self) -> int:
        return self._persistence.cleanup()

    def stats(self) -> dict[str, Any]:
        """Backend statistics plus the default TTL and pending refreshes."""
        return {
            **self._persistence.stats(),
            "default_ttl": self._default_ttl,
            "revalidating": len(self._revalidating),
        }

    def close(self) -> None:
        """Cancel pending refreshes and close the backend."""
        self.cancel_revalidations()
        self._persistence.close()

    # ------------------------------------------------------------------ #
    # Background revalidation
    # ------------------------------------------------------------------ #

    def revalidate(
        self,
        key: str,
        refresh: Refresh,
        *,
        throttle: float = 0.0,
        debounce: float = 0.0,
    ) -> bool:
        """Schedule one background *refresh* of *key*.

        At most one refresh per key is pending at a time. A call that
        arrives while one is pending is dropped, except that it pushes
        back the start of a refresh still waiting out its *debounce*
        period. A call within *throttle* seconds of the last refresh
        start is dropped too.

        *refresh* is expected to write the cache itself. Its failures are
        logged as warnings and the stale entry stays in place. Must be
        called with a running event loop.

        Returns:
            ``True`` if a new refresh was scheduled.
        """
        now = time.monotonic()
        if key in self._revalidating:
            if key in self._debounce_until:
                self._debounce_until[key] = now + debounce
                debug(f"Revalidation debounced: {key}")
            else:
                debug(f"Revalidation already running: {key}")
            return False

        last = self._last_revalidation.get(key)
        if throttle > 0 and last is not None and now - last < throttle:
            debug(f"Revalidation throttled: {key} ({now - last:.3f}s < {throttle}s)")
            return False

        if debounce > 0:
            self._debounce_until[key] = now + debounce
        task = asyncio.ensure_future(self._run_revalidation(key, refresh))
        self._revalidating[key] = task
        task.add_done_callback(lambda done: self._finish_revalidation(key, done))
        return True

    async def _run_revalidation(self, key: str, refresh: Refresh) -> Any:
        while key in self._debounce_until:
            remaining = self._debounce_until[key] - time.monotonic()
            if remaining <= 0:
                del self._debounce_until[key]
                break
            await asyncio.sleep(remaining)
        self._last_revalidation[key] = time.monotonic()
        debug(f"Revalidating: {key}")
        return await refresh()

    def _finish_revalidation(self, key: str, task: asyncio.Future) -> None:
        if self._revalidating.get(key) is task:
            del self._revalidating[key]
            self._debounce_until.pop(key, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            warning(f"Revalidation of {key} failed: {exc}")
        else:
            debug(f"Revalidated: {key}")

    def is_revalidating(self, key: str) -> bool:
        return key in self._revalidating

    def revalidating_keys(self) -> list[str]:
        return list(self._revalidating)

    async def wait_for_revalidations(self) -> None:
        """Wait until every pending refresh has finished."""
        while True:
            pending = [task for task in self._revalidating.values() if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    def cancel_revalidations(self) -> None:
        for task in list(self._revalidating.values()):
            task.cancel()
