"""Asynchronous client facade.

:class:`AsyncClient` is what applications use. It resolves each call's
effective settings from the client's :class:`~fetchkit.models.ClientConfig`
and the per-call options, then hands an
:class:`~fetchkit.client.orchestrator.ExecutionPlan` to the
:class:`~fetchkit.client.orchestrator.RequestOrchestrator`.

Resolution rules:

* **URL** -- relative URLs are joined to ``base_url``; absolute URLs are
  used as given.
* **Headers** -- ``default_headers`` first, per-call headers on top.
* **Timeout** -- the per-call value, else the client default. A value of
  ``0`` or less disables it.
* **Retry** -- ``False`` means a single attempt; ``True`` or nothing
  uses the client policy; a partial dict or :class:`RetryConfig` is
  merged over the client policy.
* **Cache** -- ``False`` disables it. ``True``, or options that set
  ``enabled``, decide explicitly for any method. Otherwise only the
  client's cacheable methods (``GET`` and ``HEAD`` by default) are
  cached, and only when the client cache is enabled.
  Per-call cache options override the client default field by field.
* **Stale-while-revalidate** -- with a ``stale_time``, a stale hit is
  returned immediately and one background request per key refreshes it.

Identical cacheable calls issued concurrently without a cancel signal
share a single execution through :class:`~fetchkit.client.dedupe.RequestDeduper`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from fetchkit.adapters.base import Adapter
from fetchkit.adapters.registry import AdapterRegistry
from fetchkit.cache.cache import ResponseCache
from fetchkit.cache.factory import persistence_from_config
from fetchkit.cache.key import derive_cache_key
from fetchkit.cache.persistence import CachePersistence
from fetchkit.cancellation import CancelSignal
from fetchkit.client.dedupe import RequestDeduper
from fetchkit.client.orchestrator import ExecutionPlan, RequestOrchestrator, Sleep
from fetchkit.exceptions import AdapterError, InvalidUsageError
from fetchkit.hooks import Hook, HookRunner
from fetchkit.models import CacheOptions, ClientConfig, RequestOptions, RetryConfig
from fetchkit.retry import RetryScheduler, merge_retry_config
from fetchkit.utils.url import join_url

CacheSetting = Union[bool, CacheOptions, dict[str, Any], None]
RetrySetting = Union[bool, RetryConfig, dict[str, Any], None]


class AsyncClient:
    """Request client with caching, retry, timeouts and cancellation.

    Args:
        config: Client defaults. ``ClientConfig()`` when omitted.
        adapter: Transport adapter to start with. Defaults to
            :class:`~fetchkit.adapters.httpx_adapter.HttpxAdapter`.
        persistence: Cache backend. Built lazily from
            ``config.persistence`` when omitted; an injected backend is
            not closed by :meth:`aclose`.
        hooks: Lifecycle hooks, run in order.
        scheduler: Retry scheduler, injectable for deterministic jitter.
        sleep: Coroutine function used for retry delays.

    Example::

        config = ClientConfig(base_url="https://api.example.com")
        async with AsyncClient(config) as client:
            users = await client.get("/users", params={"page": 1})
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        adapter: Optional[Adapter] = None,
        persistence: Optional[CachePersistence] = None,
        hooks: Optional[list[Hook]] = None,
        scheduler: Optional[RetryScheduler] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._registry = AdapterRegistry(adapter)
        self._persistence = persistence
        self._owns_persistence = persistence is None
        self._cache: Optional[ResponseCache] = None
        self._hooks = HookRunner(hooks)
        self._scheduler = scheduler or RetryScheduler()
        self._sleep: Sleep = sleep or asyncio.sleep
        self._deduper = RequestDeduper()
        self._retry = merge_retry_config(self._config.retry)
        self._cacheable = frozenset(m.upper() for m in self._config.cacheable_methods)

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for pending revalidations, then close the adapters and the owned cache."""
        if self._cache is not None:
            await self._cache.wait_for_revalidations()
        await self._registry.aclose()
        if self._cache is not None and self._owns_persistence:
            self._cache.close()
            self._cache = None

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cache(self) -> ResponseCache:
        """The response cache, created on first use."""
        if self._cache is None:
            if self._persistence is None:
                self._persistence = persistence_from_config(self._config.persistence)
            self._cache = ResponseCache(self._persistence, default_ttl=self._config.cache.ttl)
        return self._cache

    @property
    def deduper(self) -> RequestDeduper:
        return self._deduper

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def fetch(self, url: str, **options: Any) -> Any:
        """Perform a request and return its decoded value.

        Args:
            url: Absolute URL, or a path joined to ``base_url``.
            **options: Fields of :class:`~fetchkit.models.RequestOptions`
                (``method``, ``params``, ``body``, ``headers``, ``timeout``,
                ``retry``, ``cache``, ``signal``).

        Raises:
            InvalidUsageError: If *options* fail validation.
            FetchError: When the call fails after all permitted attempts,
                or is cancelled.
        """
        request_options = self._parse_options(options)
        plan = self._plan(url, request_options)
        orchestrator = RequestOrchestrator(
            self.get_adapter(),
            self.cache if plan.cache_enabled else None,
            scheduler=self._scheduler,
            hooks=self._hooks,
            sleep=self._sleep,
        )

        dedupable = (
            self._config.dedupe
            and request_options.signal is None
            and plan.method in self._cacheable
        )
        if dedupable:
            return await self._deduper.dedupe(plan.key, lambda: orchestrator.execute(plan))
        return await orchestrator.execute(plan)

    async def get(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "GET"})

    async def head(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "HEAD"})

    async def post(self, url: str, body: Any = None, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "POST", "body": body})

    async def put(self, url: str, body: Any = None, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "PUT", "body": body})

    async def patch(self, url: str, body: Any = None, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "PATCH", "body": body})

    async def delete(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, **{**options, "method": "DELETE"})

    def create_cancel_signal(self) -> CancelSignal:
        return CancelSignal()

    # ------------------------------------------------------------------ #
    # Cache management
    # ------------------------------------------------------------------ #

    def get_cache_key(self, url: str, **options: Any) -> str:
        """Return the cache key a call with these arguments would use."""
        return self._plan(url, self._parse_options(options)).key

    def invalidate_cache(self, key: Optional[str] = None) -> None:
        """Remove one entry, or every entry when *key* is ``None``."""
        if key is None:
            self.cache.clear()
        else:
            self.cache.invalidate(key)

    def invalidate_cache_matching(self, predicate: Callable[[str], bool]) -> int:
        """Remove entries whose key satisfies *predicate*; returns how many."""
        return self.cache.invalidate_matching(predicate)

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    # ------------------------------------------------------------------ #
    # Adapters and hooks
    # ------------------------------------------------------------------ #

    def set_adapter(self, adapter: Adapter) -> None:
        """Register *adapter* and make it the active transport."""
        self._registry.register(adapter)
        self._registry.set_active(adapter.name)

    def get_adapter(self, name: Optional[str] = None) -> Adapter:
        """Return the active adapter, or the one registered as *name*.

        Raises:
            AdapterError: If no adapter is registered under *name*.
        """
        if name is None:
            return self._registry.get_active()
        adapter = self._registry.get(name)
        if adapter is None:
            raise AdapterError(f"Adapter '{name}' not registered")
        return adapter

    def adapter_names(self) -> list[str]:
        return self._registry.names()

    @property
    def adapters(self) -> AdapterRegistry:
        return self._registry

    def add_hook(self, hook: Hook) -> None:
        self._hooks.add(hook)

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    @staticmethod
    def _parse_options(options: dict[str, Any]) -> RequestOptions:
        try:
            return RequestOptions(**options)
        except ValidationError as exc:
            raise InvalidUsageError(f"Invalid request options: {exc}") from exc

    def _plan(self, url: str, options: RequestOptions) -> ExecutionPlan:
        method = options.method.upper()
        full_url = join_url(self._config.base_url, url)
        headers = {**self._config.default_headers, **options.headers}
        timeout = options.timeout if options.timeout is not None else self._config.timeout
        cache_enabled, cache = self._resolve_cache(method, options.cache)

        key = cache.key or derive_cache_key(
            full_url,
            method=method,
            params=options.params,
            body=options.body,
            mutating_methods=self._config.mutating_methods,
        )
        return ExecutionPlan(
            url=full_url,
            key=key,
            options=options.model_copy(update={"method": method, "headers": headers}),
            retry=self._resolve_retry(options.retry),
            cache_enabled=cache_enabled,
            ttl=cache.ttl,
            timeout=timeout,
            stale_time=cache.stale_time,
            revalidate=cache.revalidate,
            throttle=cache.throttle_time,
            debounce=cache.debounce_time,
            validator=cache.validator,
            should_fetch=cache.should_fetch,
        )

    def _resolve_retry(self, retry: RetrySetting) -> RetryConfig:
        if retry is None or retry is True:
            return self._retry
        if retry is False:
            return merge_retry_config({"count": 1}, base=self._retry)
        return merge_retry_config(retry, base=self._retry)

    def _resolve_cache(self, method: str, cache: CacheSetting) -> tuple[bool, CacheOptions]:
        """Return ``(enabled, effective options)`` for one call.

        Per-call fields override the client default one by one; fields
        the caller did not set keep the default's value.
        """
        default = self._config.cache
        implicit = default.enabled and method in self._cacheable

        if cache is False:
            return False, default
        if cache is None:
            return implicit, default
        if cache is True:
            return True, default

        if isinstance(cache, CacheOptions):
            fields = {name: getattr(cache, name) for name in cache.model_fields_set}
        else:
            fields = dict(cache)
        enabled = bool(fields["enabled"]) if "enabled" in fields else implicit
        if not fields.get("key"):
            fields.pop("key", None)
        data = {name: getattr(default, name) for name in CacheOptions.model_fields}
        data.update(fields)
        try:
            effective = CacheOptions(**data)
        except ValidationError as exc:
            raise InvalidUsageError(f"Invalid cache options: {exc}") from exc
        return enabled, effective
