"""Small helpers shared by the adapters and the client facade."""

from fetchkit.utils.url import build_url, join_url

__all__ = ["build_url", "join_url"]
