"""Default transport adapter on :class:`httpx.AsyncClient`."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from fetchkit.adapters.base import Adapter, AdapterRequest, AdapterResponse


def extract_response_data(response: httpx.Response) -> Any:
    """Decode the body of *response*.

    JSON content types are parsed, falling back to text when the body is
    not valid JSON. Text content types (and responses without a content
    type) are returned as ``str``; anything else as raw ``bytes``. An
    empty body is ``None``.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    if not content_type or content_type.startswith("text/"):
        return response.text
    return response.content


class HttpxAdapter(Adapter):
    """Adapter backed by a lazily created :class:`httpx.AsyncClient`.

    Per-call timeouts are enforced by the orchestrator, so the httpx
    client itself runs without one unless *timeout* is given.

    Args:
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
        timeout: httpx-level timeout in seconds; ``None`` disables it.
        verify: Verify TLS certificates.
        client: A preconfigured client to use instead of creating one.
            It is not closed by :meth:`aclose`.
    """

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        verify: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._verify = verify
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "httpx"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                verify=self._verify,
                follow_redirects=True,
            )
        return self._client

    async def request(self, request: AdapterRequest) -> AdapterResponse:
        response = await self._get_client().request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        )
        return AdapterResponse(
            data=extract_response_data(response),
            status=response.status_code,
            status_text=response.reason_phrase or "",
            headers=dict(response.headers),
            raw=response,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
