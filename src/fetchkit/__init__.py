"""fetchkit -- resilient HTTP requests with caching, retry and cancellation.

fetchkit wraps a pluggable transport adapter (httpx by default) with a
per-call resilience engine: response caching under a byte quota, timeouts,
push-based cancellation, retry with backoff and jitter, and a normalised
error taxonomy.

Typical use::

    from fetchkit import AsyncClient, ClientConfig

    async with AsyncClient(ClientConfig(base_url="https://api.example.com")) as client:
        users = await client.get("/users", params={"page": 1})

Modules:
    client: :class:`AsyncClient` facade and the request orchestrator.
    cache: Cache keys, persistence backends and :class:`ResponseCache`.
    adapters: Transport adapter interface and the httpx adapter.
    classifier: Raw failure to :class:`ErrorCategory` mapping.
    retry: Retry predicate and backoff delays.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr discipline with Rich support.
    app: Typer CLI entry point.
"""

__version__ = "0.3.0"

from fetchkit.cancellation import AbortError, CancelSignal  # noqa: E402
from fetchkit.client import AsyncClient  # noqa: E402
from fetchkit.exceptions import FetchError, FetchkitError, QuotaExceededError  # noqa: E402
from fetchkit.hooks import Hook, HookContext  # noqa: E402
from fetchkit.models import (  # noqa: E402
    BackoffStrategy,
    CacheOptions,
    ClientConfig,
    ErrorCategory,
    RetryConfig,
)

__all__ = [
    "__version__",
    "AbortError",
    "AsyncClient",
    "BackoffStrategy",
    "CacheOptions",
    "CancelSignal",
    "ClientConfig",
    "ErrorCategory",
    "FetchError",
    "FetchkitError",
    "Hook",
    "HookContext",
    "QuotaExceededError",
    "RetryConfig",
]
