"""Error classification -- maps raw failures onto the fetchkit taxonomy.

Every failed attempt passes through :func:`to_fetch_error`, which turns
whatever the transport or orchestrator raised (an :class:`httpx`
exception, a :class:`~fetchkit.exceptions.ResponseStatusError`, an
:class:`~fetchkit.cancellation.AbortError`, a decoding error, ...) into a
:class:`~fetchkit.exceptions.FetchError` with one
:class:`~fetchkit.models.ErrorCategory` and a human-readable message.

Categories are detected in priority order:

1. ``CANCEL`` -- explicit ``is_cancelled`` flag, or an abort without the
   timeout flag.
2. ``TIMEOUT`` -- an abort flagged as timeout, or a transport timeout.
3. ``NETWORK`` -- connectivity failures (refused, DNS, CORS, ...).
4. ``CLIENT`` -- status 400-499.
5. ``SERVER`` -- status 500 and above.
6. ``PARSE`` -- payload decoding failures.
7. ``UNKNOWN`` -- anything else.

Cancel is checked before timeout because both come out of the same abort
path in the orchestrator; only the explicit flag tells them apart.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx

from fetchkit.cancellation import AbortError
from fetchkit.exceptions import FetchError
from fetchkit.models import ErrorCategory

MIN_DESCRIPTIVE_LENGTH = 10

_NETWORK_MARKERS = ("network", "failed to fetch", "cors")
_PARSE_MARKERS = ("parse", "json")
_GENERIC_MESSAGES = frozenset({
    "error",
    "exception",
    "unknown error",
    "request failed",
    "[object object]",
})

STATUS_MESSAGES: dict[int, str] = {
    400: "Bad Request: The server could not understand the request",
    401: "Unauthorized: Authentication is required",
    403: "Forbidden: You do not have permission to access this resource",
    404: "Not Found: The requested resource was not found",
    408: "Request Timeout: The server timed out waiting for the request",
    409: "Conflict: The request conflicts with the current state of the server",
    413: "Payload Too Large: The request body is too large",
    429: "Too Many Requests: You have sent too many requests",
    500: "Internal Server Error: The server encountered an unexpected condition",
    502: "Bad Gateway: The server received an invalid response from the upstream server",
    503: "Service Unavailable: The server is currently unavailable",
    504: "Gateway Timeout: The server did not receive a timely response from the upstream server",
}

_CATEGORY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.TIMEOUT: "Request Timeout: The request took too long to complete",
    ErrorCategory.CANCEL: "Request Cancelled: The request was cancelled",
    ErrorCategory.NETWORK: "Network Error: The request failed due to a network issue",
    ErrorCategory.PARSE: "Parse Error: The response payload could not be decoded",
}

_FALLBACK_MESSAGE = "Request Failed: An error occurred while processing the request"


def status_of(raw: Any) -> Optional[int]:
    """Return the HTTP status carried by *raw* or its ``response``, if any."""
    status = getattr(raw, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    response = getattr(raw, "response", None)
    if response is not None:
        for attr in ("status", "status_code"):
            value = getattr(response, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


def classify(raw: Any) -> ErrorCategory:
    """Return the :class:`ErrorCategory` for a raw failure.

    A :class:`FetchError` keeps the category it was created with.
    """
    if isinstance(raw, FetchError):
        return raw.category

    if getattr(raw, "is_cancelled", False) is True:
        return ErrorCategory.CANCEL
    if isinstance(raw, AbortError):
        return ErrorCategory.TIMEOUT if raw.is_timeout else ErrorCategory.CANCEL
    if isinstance(raw, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT

    message = str(raw).lower() if raw is not None else ""

    if isinstance(raw, (httpx.TransportError, ConnectionError)):
        return ErrorCategory.NETWORK
    if any(marker in message for marker in _NETWORK_MARKERS):
        return ErrorCategory.NETWORK

    status = status_of(raw)
    if status is not None:
        if 400 <= status < 500:
            return ErrorCategory.CLIENT
        if status >= 500:
            return ErrorCategory.SERVER

    if isinstance(raw, (json.JSONDecodeError, UnicodeDecodeError)):
        return ErrorCategory.PARSE
    if any(marker in message for marker in _PARSE_MARKERS):
        return ErrorCategory.PARSE

    return ErrorCategory.UNKNOWN


def _is_descriptive(message: str, raw: Any) -> bool:
    text = message.strip()
    if len(text) <= MIN_DESCRIPTIVE_LENGTH:
        return False
    if text.lower() in _GENERIC_MESSAGES:
        return False
    return raw is None or text != type(raw).__name__


def error_message(raw: Any, category: Optional[ErrorCategory] = None) -> str:
    """Return a human-readable message for *raw*.

    The original message is kept when it is already descriptive. Otherwise
    a message is synthesised from the HTTP status, then from the
    category, then a generic sentence.
    """
    message = str(raw) if raw is not None else ""
    if _is_descriptive(message, raw):
        return message

    status = status_of(raw)
    if status is not None:
        if status in STATUS_MESSAGES:
            return STATUS_MESSAGES[status]
        if 400 <= status < 500:
            return f"Client Error: The request failed with status code {status}"
        if status >= 500:
            return (
                "Server Error: The server failed to process the request "
                f"with status code {status}"
            )

    if category is None:
        category = classify(raw)
    return _CATEGORY_MESSAGES.get(category, _FALLBACK_MESSAGE)


def to_fetch_error(
    raw: BaseException,
    *,
    url: Optional[str] = None,
    method: Optional[str] = None,
) -> FetchError:
    """Classify *raw* and wrap it in a :class:`FetchError`.

    An existing :class:`FetchError` is returned as-is (with ``url`` and
    ``method`` filled in when missing) so its category is never changed.
    """
    if isinstance(raw, FetchError):
        if raw.url is None:
            raw.url = url
        if raw.method is None:
            raw.method = method
        return raw

    category = classify(raw)
    return FetchError(
        error_message(raw, category),
        category=category,
        status=status_of(raw),
        is_timeout=category is ErrorCategory.TIMEOUT,
        is_cancelled=category is ErrorCategory.CANCEL,
        is_network_error=category is ErrorCategory.NETWORK,
        cause=raw,
        url=url,
        method=method,
        data=getattr(raw, "data", None),
    )
