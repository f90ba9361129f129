"""Transport adapter interface.

An adapter performs the actual network call. The orchestrator knows
nothing about HTTP libraries: it hands the adapter a URL and the
per-call :class:`~fetchkit.models.RequestOptions`, gets back an
:class:`AdapterRequest` from :meth:`Adapter.transform_request`, and
awaits :meth:`Adapter.request` for an :class:`AdapterResponse`.

Adapters must not raise for error statuses. A 404 or 500 is returned
as a normal :class:`AdapterResponse`; the orchestrator turns statuses of
400 and above into classified failures. Adapters should raise only for
transport problems (connection refused, DNS, TLS, reset).

Example:
    Minimal adapter returning canned data::

        class StaticAdapter(Adapter):
            @property
            def name(self) -> str:
                return "static"

            async def request(self, request):
                return AdapterResponse(data={"ok": True}, status=200)
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from fetchkit.models import RequestOptions
from fetchkit.utils.url import build_url

_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass
class AdapterRequest:
    """A request ready for the transport.

    Attributes:
        url: Absolute URL including the serialised query string.
        method: Upper-case HTTP method.
        headers: Request headers, including any content type the
            adapter added.
        body: Encoded body, or ``None`` for bodyless methods.
        extensions: Adapter-specific extras.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes | str] = None
    extensions: dict[str, Any] = field(default_factory=dict)


@dataclass
class AdapterResponse:
    """A transport response with its body already decoded.

    Attributes:
        data: Decoded body (JSON value, text, bytes, or ``None``).
        status: HTTP status code.
        status_text: Reason phrase.
        headers: Response headers.
        raw: The underlying library's response object, if any.
    """

    data: Any = None
    status: int = 200
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    raw: Any = None

    @property
    def ok(self) -> bool:
        return self.status < 400


class Adapter(ABC):
    """Base class for transport adapters.

    Subclasses implement :attr:`name` and :meth:`request`.
    :meth:`transform_request` has a default that serialises query
    parameters and JSON-encodes mapping and list bodies; override it for
    transports with different needs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name used by :class:`~fetchkit.adapters.registry.AdapterRegistry`."""
        ...

    def transform_request(self, url: str, options: RequestOptions) -> AdapterRequest:
        """Build an :class:`AdapterRequest` from *url* and per-call *options*."""
        method = options.method.upper()
        headers = dict(options.headers)
        body: Optional[bytes | str] = None

        if options.body is not None and method not in _BODYLESS_METHODS:
            if isinstance(options.body, (bytes, str)):
                body = options.body
            else:
                body = json.dumps(options.body, ensure_ascii=False, default=str)
                if not any(h.lower() == "content-type" for h in headers):
                    headers["Content-Type"] = "application/json"

        return AdapterRequest(
            url=build_url(url, options.params),
            method=method,
            headers=headers,
            body=body,
        )

    @abstractmethod
    async def request(self, request: AdapterRequest) -> AdapterResponse:
        """Perform *request* and return the decoded response."""
        ...

    async def aclose(self) -> None:
        """Release transport resources. The default does nothing."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
