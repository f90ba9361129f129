"""Canonical Pydantic models shared across all fetchkit modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Error taxonomy** -- :class:`ErrorCategory`, the closed set of failure
categories produced by :mod:`fetchkit.classifier`.

**Engine models** -- consumed by the request orchestrator on every call:
    :class:`BackoffStrategy`, :class:`RetryConfig`, :class:`CacheOptions`,
    :class:`CacheEntry`, and :class:`RequestOptions`.

**Configuration models** -- serialised as JSON in the user's config
directory: :class:`PersistenceConfig`, :class:`ClientConfig`,
:class:`OutputConfig`, and :class:`GlobalConfig`.

All models use Pydantic v2. :class:`RetryConfig` is frozen: the library
defaults are a process-wide constant and every call merges its overrides
into a fresh instance rather than mutating a shared one.
"""

from __future__ import annotations

import enum
import time
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from fetchkit.cancellation import CancelSignal


# --- Error taxonomy ---


class ErrorCategory(str, enum.Enum):
    """Closed set of failure categories, listed in detection priority order."""

    CANCEL = "cancel"
    TIMEOUT = "timeout"
    NETWORK = "network"
    CLIENT = "client"
    SERVER = "server"
    PARSE = "parse"
    UNKNOWN = "unknown"


# --- Retry ---


class BackoffStrategy(str, enum.Enum):
    """How the base retry delay grows with the attempt number."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryConfig(BaseModel):
    """Retry policy for a single call.

    ``count`` is the maximum number of attempts *including* the first one,
    so ``count=3`` means one call plus at most two retries. Durations are
    in seconds.

    ``should_retry`` replaces the default retry predicate entirely when
    set. It receives the classified :class:`~fetchkit.exceptions.FetchError`
    and the 1-based number of the attempt that just failed. It is never
    consulted once ``count`` attempts have been made.
    """

    model_config = ConfigDict(frozen=True)

    count: int = Field(default=3, ge=0, description="Maximum attempts, first call included")
    delay: float = Field(default=1.0, ge=0, description="Base delay in seconds")
    backoff: BackoffStrategy = Field(
        default=BackoffStrategy.EXPONENTIAL, description="fixed, linear or exponential"
    )
    factor: float = Field(default=2.0, ge=0, description="Multiplier for exponential backoff")
    max_delay: float = Field(default=30.0, ge=0, description="Ceiling for any single delay")
    should_retry: Optional[Callable[[Any, int], bool]] = Field(default=None, exclude=True)


# --- Cache ---


class CacheOptions(BaseModel):
    """Response cache settings, used both as a client default and per call.

    When given per call, only the fields the caller actually set override
    the client default (see ``model_fields_set``). Setting ``enabled``
    explicitly enables caching for any HTTP method; leaving it unset
    caches only the client's cacheable methods.

    ``stale_time`` turns on stale-while-revalidate: an entry older than
    ``stale_time`` seconds but younger than ``ttl`` is still returned, and
    one background request refreshes it. ``None`` keeps entries fresh for
    their whole lifetime. ``validator`` and ``should_fetch`` are code-only
    and never written to the config file.
    """

    enabled: bool = Field(default=True, description="Enable response caching")
    ttl: float = Field(default=300.0, ge=0, description="Entry time-to-live in seconds")
    key: Optional[str] = Field(
        default=None, description="Explicit cache key overriding the derived one"
    )
    stale_time: Optional[float] = Field(
        default=None, ge=0, description="Seconds after which a cached entry is stale"
    )
    revalidate: bool = Field(default=True, description="Refresh stale entries in the background")
    throttle_time: float = Field(
        default=0.0, ge=0, description="Minimum seconds between refreshes of one key"
    )
    debounce_time: float = Field(
        default=0.0, ge=0, description="Seconds of quiet before a refresh starts"
    )
    validator: Optional[Callable[[Any], bool]] = Field(default=None, exclude=True)
    should_fetch: Optional[Callable[[], Any]] = Field(default=None, exclude=True)


class CacheEntry(BaseModel):
    """One stored response payload with its lifetime metadata.

    Persisted as ``{"value", "createdAt", "expiresAt"}``, plus ``staleAt``
    when the entry was written with a stale time. An entry whose
    ``expires_at`` is in the past is logically absent even if a backend
    still holds the record. ``expires_at=None`` never expires; an entry
    past ``stale_at`` is still served but due for a refresh.
    """

    model_config = ConfigDict(populate_by_name=True)

    value: Any = None
    created_at: float = Field(default_factory=time.time, alias="createdAt")
    expires_at: Optional[float] = Field(default=None, alias="expiresAt")
    stale_at: Optional[float] = Field(default=None, alias="staleAt")

    @classmethod
    def create(
        cls, value: Any, ttl: Optional[float] = None, stale_time: Optional[float] = None
    ) -> CacheEntry:
        """Build an entry created now that expires after *ttl* seconds."""
        now = time.time()
        expires_at = now + ttl if ttl is not None else None
        stale_at = now + stale_time if stale_time is not None else None
        return cls(value=value, created_at=now, expires_at=expires_at, stale_at=stale_at)

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at <= current

    def is_stale(self, now: Optional[float] = None) -> bool:
        if self.stale_at is None:
            return False
        current = time.time() if now is None else now
        return self.stale_at <= current


# --- Per-call options ---


class RequestOptions(BaseModel):
    """Caller-supplied options for one request, merged over client defaults.

    ``retry`` and ``cache`` accept a bool shortcut (``False`` disables,
    ``True`` uses the client default), a partial dict, or a full model.
    ``timeout`` is in seconds; ``None`` falls back to the client default
    and a value ``<= 0`` disables the timeout.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str = "GET"
    params: Optional[dict[str, Any]] = None
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None
    retry: Union[bool, RetryConfig, dict[str, Any], None] = None
    cache: Union[bool, CacheOptions, dict[str, Any], None] = None
    signal: Optional[CancelSignal] = None


# --- Configuration ---


class PersistenceConfig(BaseModel):
    """Which cache backend to build and how to bound it."""

    kind: Literal["auto", "local", "session", "memory"] = Field(
        default="auto", description="Backend: auto, local, session, memory"
    )
    namespace: Optional[str] = Field(
        default=None, description="Key prefix; defaults to the backend's own prefix"
    )
    max_size: Optional[int] = Field(
        default=5 * 1024 * 1024, description="Quota in bytes; null disables the quota"
    )
    directory: Optional[str] = Field(
        default=None, description="Directory for the durable store (defaults to the cache dir)"
    )


class ClientConfig(BaseModel):
    """Defaults applied to every request issued by one client."""

    base_url: str = Field(default="", description="Prefix for relative request URLs")
    default_headers: dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=30.0, description="Request timeout in seconds")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheOptions = Field(default_factory=CacheOptions)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    mutating_methods: list[str] = Field(
        default_factory=lambda: ["POST", "PUT", "PATCH", "DELETE"],
        description="Methods whose body is part of the cache key",
    )
    cacheable_methods: list[str] = Field(
        default_factory=lambda: ["GET", "HEAD"],
        description="Methods cached when a call does not say otherwise",
    )
    dedupe: bool = Field(
        default=True, description="Share one in-flight call between identical requests"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/fetchkit/config.json``.

    Loaded and saved by :func:`~fetchkit.config.load_global_config` and
    :func:`~fetchkit.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by environment variables or
    CLI flags. See :func:`~fetchkit.config.resolve_config` for the full
    precedence chain.
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
