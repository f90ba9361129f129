"""Lifecycle hooks for observing and adjusting requests.

* :class:`Hook` -- base class with no-op callbacks; subclass and override
  the ones you need.
* :class:`HookContext` -- mutable dataclass describing the current call.
  Fields fill in as the call progresses.
* :class:`HookRunner` -- calls every hook in registration order.

``on_request`` runs before the first attempt and may change
``ctx.headers``; the modified headers are what the transport sees, and
an exception raised there aborts the call. All other callbacks are pure
observers: an exception inside one is logged at debug level and
swallowed so that a faulty hook never masks the request outcome.

Example::

    class TraceHook(Hook):
        def on_request(self, ctx):
            ctx.headers["X-Trace-Id"] = new_trace_id()

        def on_retry(self, ctx):
            print(f"retry #{ctx.attempt} of {ctx.url} in {ctx.delay}s")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from fetchkit.output import debug


@dataclass
class HookContext:
    """State of one call as seen by hooks.

    Attributes:
        method: Upper-case HTTP method.
        url: Resolved request URL (without the query string).
        key: Cache key of the call.
        headers: Request headers; mutable in ``on_request``.
        params: Query parameters.
        body: Request body.
        attempt: 1-based number of the current attempt.
        status: Response status, once known.
        data: Response value, or the cached value on a hit.
        error: The classified error for ``on_error`` and ``on_retry``.
        delay: Seconds until the next attempt, for ``on_retry``.
        stale: The cache hit was past its stale time and a background
            revalidation may follow.
    """

    method: str = "GET"
    url: str = ""
    key: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    attempt: int = 0
    status: Optional[int] = None
    data: Any = None
    error: Optional[Exception] = None
    delay: float = 0.0
    stale: bool = False


class Hook:
    """Base class for request lifecycle hooks. Every callback is a no-op."""

    def on_request(self, ctx: HookContext) -> None:
        """Before the first attempt. May modify ``ctx.headers``."""

    def on_response(self, ctx: HookContext) -> None:
        """After a successful response (``ctx.status`` and ``ctx.data`` set)."""

    def on_error(self, ctx: HookContext) -> None:
        """When the call fails for good (``ctx.error`` set)."""

    def on_retry(self, ctx: HookContext) -> None:
        """Before sleeping ahead of a retry (``ctx.error`` and ``ctx.delay`` set)."""

    def on_cache_hit(self, ctx: HookContext) -> None:
        pass

    def on_cache_miss(self, ctx: HookContext) -> None:
        pass

    def on_cache_set(self, ctx: HookContext) -> None:
        pass


class HookRunner:
    """Runs callbacks across hooks in registration order.

    Args:
        hooks: Hooks to run. The list is copied; use :meth:`add` to
            register more later.
    """

    def __init__(self, hooks: Optional[list[Hook]] = None) -> None:
        self._hooks = list(hooks or [])

    def add(self, hook: Hook) -> None:
        self._hooks.append(hook)

    def __len__(self) -> int:
        return len(self._hooks)

    def run_request(self, ctx: HookContext) -> HookContext:
        """Run ``on_request`` hooks. Exceptions propagate."""
        for hook in self._hooks:
            hook.on_request(ctx)
        return ctx

    def run_response(self, ctx: HookContext) -> None:
        self._notify("on_response", ctx)

    def run_error(self, ctx: HookContext) -> None:
        self._notify("on_error", ctx)

    def run_retry(self, ctx: HookContext) -> None:
        self._notify("on_retry", ctx)

    def run_cache_hit(self, ctx: HookContext) -> None:
        self._notify("on_cache_hit", ctx)

    def run_cache_miss(self, ctx: HookContext) -> None:
        self._notify("on_cache_miss", ctx)

    def run_cache_set(self, ctx: HookContext) -> None:
        self._notify("on_cache_set", ctx)

    def _notify(self, callback: str, ctx: HookContext) -> None:
        for hook in self._hooks:
            try:
                getattr(hook, callback)(ctx)
            except Exception as exc:
                debug(f"Hook {type(hook).__name__}.{callback} raised: {exc!r}")
