"""``fetchkit cache`` -- inspect and prune the configured response cache."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import typer

from fetchkit.cache import ResponseCache, persistence_from_config
from fetchkit.output import format_response, info, print_table, success, warning

cache_app = typer.Typer(no_args_is_help=True)


@contextmanager
def _open_cache() -> Iterator[ResponseCache]:
    from fetchkit.config import resolve_config

    config = resolve_config()
    cache = ResponseCache(
        persistence_from_config(config.client.persistence),
        default_ttl=config.client.cache.ttl,
    )
    try:
        yield cache
    finally:
        cache.close()


@cache_app.command("keys")
def cache_keys() -> None:
    """List the keys stored in the cache namespace."""
    with _open_cache() as cache:
        keys = cache.keys()
    if not keys:
        info("Cache is empty.")
        return
    print_table(["key"], [[key] for key in keys], title="Cached responses")


@cache_app.command("stats")
def cache_stats() -> None:
    """Show backend, namespace, entry count and size."""
    with _open_cache() as cache:
        format_response(cache.stats())


@cache_app.command("delete")
def cache_delete(key: str = typer.Argument(help="Cache key to remove.")) -> None:
    """Remove one entry."""
    with _open_cache() as cache:
        removed = cache.invalidate(key)
    if removed:
        success(f"Removed {key}")
    else:
        warning(f"No cache entry for {key}")


@cache_app.command("cleanup")
def cache_cleanup() -> None:
    """Remove expired and unreadable entries."""
    with _open_cache() as cache:
        removed = cache.cleanup()
    success(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'}.")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every entry in the cache namespace.

    Asks for confirmation unless ``--force`` is active.
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Remove all cached responses?"):
        info("Cancelled.")
        raise typer.Exit()
    with _open_cache() as cache:
        cache.clear()
    success("Cache cleared.")
