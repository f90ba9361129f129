"""Exception hierarchy for fetchkit.

All exceptions inherit from :class:`FetchkitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchkit.exit_codes`.
The CLI entry point in :func:`fetchkit.app.main` catches ``FetchkitError``
and exits with the appropriate code, while unexpected exceptions produce a
crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    FetchkitError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- FetchError            (exit code derived from its category)
    +-- QuotaExceededError    (exit 9)
    +-- ConfigError           (exit 1)
    +-- AdapterError          (exit 1)

:class:`ResponseStatusError` is not part of the public hierarchy: it is
the raw failure raised for a non-2xx response before classification
turns it into a :class:`FetchError`.
"""

from __future__ import annotations

from typing import Any, Optional

from fetchkit.exit_codes import (
    EXIT_CACHE_ERROR,
    EXIT_CANCELLED,
    EXIT_CLIENT_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PARSE_ERROR,
    EXIT_SERVER_ERROR,
)
from fetchkit.models import ErrorCategory


_CATEGORY_EXIT_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.CANCEL: EXIT_CANCELLED,
    ErrorCategory.TIMEOUT: EXIT_CONNECTION_ERROR,
    ErrorCategory.NETWORK: EXIT_CONNECTION_ERROR,
    ErrorCategory.CLIENT: EXIT_CLIENT_ERROR,
    ErrorCategory.SERVER: EXIT_SERVER_ERROR,
    ErrorCategory.PARSE: EXIT_PARSE_ERROR,
    ErrorCategory.UNKNOWN: EXIT_GENERIC_FAILURE,
}


class FetchkitError(Exception):
    """Base exception for all fetchkit errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`fetchkit.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(FetchkitError):
    """Raised for invalid CLI arguments or malformed request options."""

    exit_code = EXIT_INVALID_USAGE


class FetchError(FetchkitError):
    """A classified request failure, surfaced once retries are exhausted.

    One instance is created per failed attempt. ``retry_count`` is the
    number of retries that preceded the failing attempt, so a call that
    failed on its third attempt surfaces ``retry_count == 2``. The
    category is fixed at construction and never downgraded.

    Attributes:
        category: The :class:`~fetchkit.models.ErrorCategory`.
        status: HTTP status code, when the failure came from a response.
        is_timeout: The per-call timeout fired.
        is_cancelled: The caller's cancel signal fired.
        is_network_error: The transport could not reach the server.
        retry_count: Retries that preceded this failure.
        cause: The raw failure this error was classified from.
        url: The request URL.
        method: The request method.
        data: Parsed response body of a failed response, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status: Optional[int] = None,
        is_timeout: bool = False,
        is_cancelled: bool = False,
        is_network_error: bool = False,
        retry_count: int = 0,
        cause: Optional[BaseException] = None,
        url: Optional[str] = None,
        method: Optional[str] = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.category = category
        self.status = status
        self.is_timeout = is_timeout
        self.is_cancelled = is_cancelled
        self.is_network_error = is_network_error
        self.retry_count = retry_count
        self.cause = cause
        self.url = url
        self.method = method
        self.data = data
        if cause is not None:
            self.__cause__ = cause

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        if self.status == 404:
            return EXIT_NOT_FOUND
        return _CATEGORY_EXIT_CODES.get(self.category, EXIT_GENERIC_FAILURE)

    def __repr__(self) -> str:
        return (
            f"FetchError({str(self)!r}, category={self.category.value}, "
            f"status={self.status}, retry_count={self.retry_count})"
        )


class ResponseStatusError(Exception):
    """Raw failure for a response whose status is 400 or above."""

    def __init__(self, status: int, data: Any = None, message: str = ""):
        super().__init__(message or f"HTTP {status}")
        self.status = status
        self.data = data


class QuotaExceededError(FetchkitError):
    """Raised by a persistence backend when a write would exceed its size budget.

    Never escapes a request: the orchestrator logs it as a soft failure
    and still returns the fetched value.
    """

    exit_code = EXIT_CACHE_ERROR

    def __init__(self, message: str, *, key: str = "", required: int = 0, available: int = 0):
        super().__init__(message)
        self.key = key
        self.required = required
        self.available = available


class ConfigError(FetchkitError):
    """Raised for configuration problems (invalid JSON, failed validation, bad env values)."""

    exit_code = EXIT_GENERIC_FAILURE


class AdapterError(FetchkitError):
    """Raised when a transport adapter cannot be registered, found or activated."""

    exit_code = EXIT_GENERIC_FAILURE
