"""Retry scheduling -- whether to try again, and how long to wait first.

The scheduler is consulted by the orchestrator after every classified
failure except cancellations. Attempt numbers are 1-based and count the
attempt that just failed, so after the first failure ``attempt == 1``.

Delays grow according to :class:`~fetchkit.models.BackoffStrategy`:

* ``fixed`` -- ``delay``
* ``linear`` -- ``delay * attempt``
* ``exponential`` -- ``delay * factor ** (attempt - 1)``

A +/-20% uniform jitter is then applied multiplicatively so that clients
failing together do not retry together, the result is floored to whole
milliseconds and capped at ``max_delay``.
"""

from __future__ import annotations

import math
import random as _random
from typing import Any, Callable, Mapping, Optional, Union

from fetchkit.exceptions import FetchError
from fetchkit.models import BackoffStrategy, ErrorCategory, RetryConfig

JITTER = 0.2
RETRYABLE_CLIENT_STATUSES = frozenset({429})

DEFAULT_RETRY_CONFIG = RetryConfig()
"""Library-wide defaults. Frozen; every call merges into a fresh copy."""

RandomSource = Callable[[], float]
RetryOverrides = Union[RetryConfig, Mapping[str, Any], None]


def default_should_retry(error: FetchError, attempt: int) -> bool:
    """Default retry predicate.

    Server errors, timeouts and network failures are retried; client
    errors only when rate limited (429); cancellations never.
    """
    if error.is_cancelled or error.category is ErrorCategory.CANCEL:
        return False
    if error.category in (ErrorCategory.SERVER, ErrorCategory.TIMEOUT, ErrorCategory.NETWORK):
        return True
    if error.category is ErrorCategory.CLIENT:
        return error.status in RETRYABLE_CLIENT_STATUSES
    return False


def calculate_retry_delay(
    config: RetryConfig,
    attempt: int,
    random: Optional[RandomSource] = None,
) -> float:
    """Return the wait in seconds before the retry that follows *attempt*.

    Args:
        config: Effective retry configuration for the call.
        attempt: 1-based number of the attempt that just failed.
        random: Source of uniform floats in ``[0, 1)``. Defaults to
            :func:`random.random`; pass a constant to get a
            deterministic delay.
    """
    draw = (random or _random.random)()
    attempt = max(attempt, 1)

    try:
        if config.backoff is BackoffStrategy.LINEAR:
            base = config.delay * attempt
        elif config.backoff is BackoffStrategy.EXPONENTIAL:
            base = config.delay * math.pow(config.factor, attempt - 1)
        else:
            base = config.delay
        jittered = base * (1 - JITTER + draw * JITTER * 2)
        millis = math.floor(jittered * 1000)
    except OverflowError:
        # Growth past float range is far beyond any ceiling.
        return config.max_delay
    return max(0.0, min(millis / 1000, config.max_delay))


def merge_retry_config(
    *overrides: RetryOverrides,
    base: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> RetryConfig:
    """Layer partial overrides over *base* and return a fresh config.

    Mappings contribute every key they contain; a :class:`RetryConfig`
    contributes only the fields that were explicitly set on it, so a
    partial ``RetryConfig(count=5)`` does not reset the other fields.
    """
    data = {name: getattr(base, name) for name in RetryConfig.model_fields}
    for override in overrides:
        if override is None:
            continue
        if isinstance(override, RetryConfig):
            data.update({name: getattr(override, name) for name in override.model_fields_set})
        else:
            data.update(override)
    return RetryConfig(**data)


class RetryScheduler:
    """Decides whether a failed attempt is retried and how long to wait.

    The attempt limit is enforced here, before any predicate runs, so a
    custom ``should_retry`` can veto retries but never extend them past
    ``config.count``.

    Args:
        random: Source of uniform floats in ``[0, 1)`` used for jitter.
    """

    def __init__(self, random: Optional[RandomSource] = None) -> None:
        self._random = random

    def should_retry(self, error: FetchError, attempt: int, config: RetryConfig) -> bool:
        if attempt >= config.count:
            return False
        predicate = config.should_retry or default_should_retry
        return bool(predicate(error, attempt))

    def next_delay(self, config: RetryConfig, attempt: int) -> float:
        return calculate_retry_delay(config, attempt, self._random)
