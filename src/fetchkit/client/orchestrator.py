"""The request state machine.

:class:`RequestOrchestrator` composes the cache, the transport adapter,
the error classifier and the retry scheduler around a single call::

    Idle -> CacheLookup --fresh hit--> Done
                        --stale hit--> Done (+ background revalidation)
                        --miss-------> InFlight --ok-----> CacheWrite -> Done
                                                --failed-> Classify --retry--> (sleep) InFlight
                                                                    --stop---> Failed

Each attempt races the transport against the per-call timeout and the
caller's :class:`~fetchkit.cancellation.CancelSignal`. When the signal
has fired by the time the race is decided, the outcome is a
cancellation even if the timeout fired too. Cancellations end the call
immediately; the scheduler is never consulted for them. The delay
between attempts is itself cancellable.

A stale hit returns the cached value at once and hands a refresh of the
key to :meth:`~fetchkit.cache.cache.ResponseCache.revalidate`. The
refresh runs the same InFlight loop without the caller's signal, since
the caller has already been answered.

A losing transport task is cancelled and left to unwind on its own; its
eventual exception is retrieved so the event loop does not report it.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

from fetchkit.adapters.base import Adapter, AdapterResponse
from fetchkit.cache.cache import ResponseCache
from fetchkit.cancellation import AbortError, CancelSignal
from fetchkit.classifier import to_fetch_error
from fetchkit.exceptions import FetchError, ResponseStatusError
from fetchkit.hooks import HookContext, HookRunner
from fetchkit.models import ErrorCategory, RequestOptions, RetryConfig
from fetchkit.output import debug
from fetchkit.retry import DEFAULT_RETRY_CONFIG, RetryScheduler

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class ExecutionPlan:
    """Everything the orchestrator needs to run one call.

    Attributes:
        url: Resolved request URL, without the query string.
        key: Cache key of the call.
        options: Per-call options with headers already merged.
        retry: Effective retry policy.
        cache_enabled: Read from and write to the cache.
        ttl: Lifetime in seconds for a cache write.
        timeout: Per-attempt timeout in seconds; ``None`` or ``<= 0``
            disables it.
        stale_time: Seconds until a written entry is stale; ``None``
            keeps it fresh until it expires.
        revalidate: Refresh stale hits in the background.
        throttle: Minimum seconds between refreshes of the key.
        debounce: Seconds of quiet before a refresh starts.
        validator: Rejects cached or fetched values it returns false for.
        should_fetch: Consulted before going to the network on a miss or
            a stale hit; may be a coroutine function.
    """

    url: str
    key: str
    options: RequestOptions
    retry: RetryConfig = DEFAULT_RETRY_CONFIG
    cache_enabled: bool = False
    ttl: Optional[float] = None
    timeout: Optional[float] = None
    stale_time: Optional[float] = None
    revalidate: bool = True
    throttle: float = 0.0
    debounce: float = 0.0
    validator: Optional[Callable[[Any], bool]] = None
    should_fetch: Optional[Callable[[], Any]] = None

    @property
    def method(self) -> str:
        return self.options.method.upper()


def _discard(task: asyncio.Future) -> None:
    """Cancel *task* without awaiting it and swallow its eventual outcome."""
    if not task.done():
        task.cancel()
    task.add_done_callback(_consume_outcome)


def _consume_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


def _detail_message(status: int, data: Any) -> str:
    """Build ``HTTP <status>: <detail>`` from an error payload, if it has one."""
    detail = ""
    if isinstance(data, dict):
        detail = str(data.get("message") or data.get("error") or data.get("detail") or "")
    elif isinstance(data, str):
        detail = data[:200]
    return f"HTTP {status}: {detail}" if detail else ""


def _context(plan: ExecutionPlan) -> HookContext:
    options = plan.options
    return HookContext(
        method=plan.method,
        url=plan.url,
        key=plan.key,
        headers=dict(options.headers),
        params=dict(options.params or {}),
        body=options.body,
    )


class RequestOrchestrator:
    """Runs calls through cache, transport, classification and retry.

    Args:
        adapter: Transport adapter performing the network call.
        cache: Response cache; ``None`` disables caching regardless of
            the plan.
        scheduler: Retry scheduler. A default one is created if omitted.
        hooks: Lifecycle hooks.
        sleep: Coroutine function used for retry delays. Injectable so
            tests do not have to wait.
    """

    def __init__(
        self,
        adapter: Adapter,
        cache: Optional[ResponseCache] = None,
        scheduler: Optional[RetryScheduler] = None,
        hooks: Optional[HookRunner] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._cache = cache
        self._scheduler = scheduler or RetryScheduler()
        self._hooks = hooks or HookRunner()
        self._sleep = sleep

    async def execute(self, plan: ExecutionPlan) -> Any:
        """Run *plan* to completion.

        Returns:
            The response value, from the cache or the transport. A stale
            cached value is returned as-is while a refresh is scheduled.

        Raises:
            FetchError: The classified failure of the last attempt, or a
                ``CANCEL`` error as soon as the signal fires or when
                ``should_fetch`` declines and nothing is cached.
        """
        ctx = _context(plan)
        use_cache = plan.cache_enabled and self._cache is not None
        if not use_cache:
            return await self._fetch(plan, ctx, write_cache=False)

        entry = self._cache.lookup_entry(plan.key, validator=plan.validator)
        if entry is not None:
            ctx.data = entry.value
            ctx.stale = entry.is_stale()
            self._hooks.run_cache_hit(ctx)
            if ctx.stale and plan.revalidate:
                await self._schedule_revalidation(plan)
            return entry.value
        self._hooks.run_cache_miss(ctx)

        if not await self._may_fetch(plan):
            error = FetchError(
                "Fetch skipped by should_fetch and no cached data is available",
                category=ErrorCategory.CANCEL,
                is_cancelled=True,
                url=plan.url,
                method=plan.method,
            )
            ctx.error = error
            self._hooks.run_error(ctx)
            raise error
        return await self._fetch(plan, ctx, write_cache=True)

    # ------------------------------------------------------------------ #
    # Revalidation
    # ------------------------------------------------------------------ #

    @staticmethod
    async def _may_fetch(plan: ExecutionPlan) -> bool:
        if plan.should_fetch is None:
            return True
        result = plan.should_fetch()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _schedule_revalidation(self, plan: ExecutionPlan) -> None:
        if not await self._may_fetch(plan):
            debug(f"Revalidation skipped by should_fetch: {plan.key}")
            return
        background = replace(plan, options=plan.options.model_copy(update={"signal": None}))
        self._cache.revalidate(
            plan.key,
            lambda: self._fetch(background, _context(background), write_cache=True),
            throttle=plan.throttle,
            debounce=plan.debounce,
        )

    # ------------------------------------------------------------------ #
    # Network loop
    # ------------------------------------------------------------------ #

    async def _fetch(self, plan: ExecutionPlan, ctx: HookContext, write_cache: bool) -> Any:
        """Run attempts until one succeeds or the scheduler gives up."""
        self._hooks.run_request(ctx)
        options = plan.options.model_copy(update={"headers": ctx.headers})
        signal = options.signal
        validator = plan.validator if write_cache else None

        attempt = 0
        while True:
            attempt += 1
            ctx.attempt = attempt
            try:
                response = await self._attempt(plan, options, signal)
                if response.status >= 400:
                    raise ResponseStatusError(
                        response.status,
                        response.data,
                        _detail_message(response.status, response.data),
                    )
                if validator is not None and not validator(response.data):
                    raise FetchError(
                        "Fetched data failed validation",
                        category=ErrorCategory.PARSE,
                        status=response.status,
                        data=response.data,
                    )
            except Exception as exc:
                error = to_fetch_error(exc, url=plan.url, method=plan.method)
                error.retry_count = attempt - 1
                ctx.error = error
                ctx.status = error.status

                if error.category is ErrorCategory.CANCEL:
                    self._hooks.run_error(ctx)
                    raise error
                if not self._scheduler.should_retry(error, attempt, plan.retry):
                    self._hooks.run_error(ctx)
                    raise error

                delay = self._scheduler.next_delay(plan.retry, attempt)
                debug(
                    f"{plan.method} {plan.url} failed ({error.category.value}: {error}); "
                    f"retrying in {delay:.3f}s (attempt {attempt}/{plan.retry.count})"
                )
                ctx.delay = delay
                self._hooks.run_retry(ctx)
                await self._wait_before_retry(delay, signal, plan, attempt, ctx)
                continue

            value = response.data
            ctx.status = response.status
            ctx.data = value
            ctx.error = None
            if write_cache and self._cache.set(plan.key, value, plan.ttl, plan.stale_time):
                self._hooks.run_cache_set(ctx)
            self._hooks.run_response(ctx)
            return value

    # ------------------------------------------------------------------ #
    # Racing
    # ------------------------------------------------------------------ #

    async def _attempt(
        self,
        plan: ExecutionPlan,
        options: RequestOptions,
        signal: Optional[CancelSignal],
    ) -> AdapterResponse:
        """One transport call raced against the timeout and the signal."""
        if signal is not None and signal.cancelled:
            raise AbortError("The request was cancelled", reason=signal.reason)

        request = self._adapter.transform_request(plan.url, options)
        transport = asyncio.ensure_future(self._adapter.request(request))
        watchers: set[asyncio.Future] = {transport}
        cancel_waiter: Optional[asyncio.Future] = None
        if signal is not None:
            cancel_waiter = asyncio.ensure_future(signal.wait())
            watchers.add(cancel_waiter)

        timeout = plan.timeout if plan.timeout is not None and plan.timeout > 0 else None
        try:
            done, _ = await asyncio.wait(
                watchers, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            _discard(transport)
            raise
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if signal is not None and signal.cancelled:
            _discard(transport)
            raise AbortError("The request was cancelled", reason=signal.reason)
        if transport in done:
            return transport.result()

        _discard(transport)
        raise AbortError(f"The request timed out after {timeout}s", is_timeout=True)

    async def _wait_before_retry(
        self,
        delay: float,
        signal: Optional[CancelSignal],
        plan: ExecutionPlan,
        attempt: int,
        ctx: HookContext,
    ) -> None:
        """Sleep *delay* seconds, ending early with a CANCEL error if *signal* fires."""
        if signal is None:
            await self._sleep(delay)
            return

        if not signal.cancelled:
            sleeper = asyncio.ensure_future(self._sleep(delay))
            waiter = asyncio.ensure_future(signal.wait())
            try:
                await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (sleeper, waiter):
                    if not task.done():
                        task.cancel()

        if signal.cancelled:
            abort = AbortError("The request was cancelled during the retry delay", reason=signal.reason)
            error: FetchError = to_fetch_error(abort, url=plan.url, method=plan.method)
            error.retry_count = attempt
            ctx.error = error
            self._hooks.run_error(ctx)
            raise error
