"""``fetchkit request`` -- issue one request through :class:`~fetchkit.client.AsyncClient`.

Query parameters, headers and the body are given on the command line;
everything else (base URL, timeout, retry and cache policy, backend)
comes from the resolved configuration, see
:func:`~fetchkit.config.resolve_config`.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import typer

from fetchkit.exceptions import InvalidUsageError
from fetchkit.output import debug, format_response


def parse_params(items: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` items into a params dict; repeated keys become lists."""
    params: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise InvalidUsageError(f"Invalid parameter '{item}', expected key=value")
        if key in params:
            existing = params[key]
            params[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


def parse_headers(items: list[str]) -> dict[str, str]:
    """Turn ``Name: value`` items into a headers dict."""
    headers: dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid header '{item}', expected 'Name: value'")
        headers[name.strip()] = value.strip()
    return headers


def parse_body(body: Optional[str]) -> Any:
    """Parse *body* as JSON, keeping it as a string when it is not JSON."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def request_command(
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE, HEAD)."),
    url: str = typer.Argument(help="Absolute URL, or a path joined to the configured base URL."),
    param: list[str] = typer.Option([], "--param", "-p", help="Query parameter key=value."),
    header: list[str] = typer.Option([], "--header", "-H", help="Header 'Name: value'."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body (JSON or raw)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds."),
    retries: Optional[int] = typer.Option(
        None, "--retries", help="Maximum attempts, first call included."
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the response cache."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the base URL."),
) -> None:
    """Send a request and print the response body.

    Example::

        fetchkit request GET https://api.example.com/users -p page=2
        fetchkit request POST /users -d '{"name": "Ada"}' -H 'X-Trace: 1'
    """
    from fetchkit.client import AsyncClient
    from fetchkit.config import resolve_config

    config = resolve_config(cli_base_url=base_url, cli_timeout=timeout, cli_retries=retries)
    options: dict[str, Any] = {
        "method": method.upper(),
        "params": parse_params(param) or None,
        "headers": parse_headers(header),
        "body": parse_body(data),
    }
    if no_cache:
        options["cache"] = False

    async def _run() -> Any:
        async with AsyncClient(config.client) as client:
            debug(f"{options['method']} {url}")
            return await client.fetch(url, **options)

    result = asyncio.run(_run())
    if result is not None:
        format_response(result)
