"""
URL and cache key construction for library API requests.

Keys are derived from the endpoint path plus the query parameters sorted by
name, so two logically identical requests always share one cache entry and
one in-flight slot.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode


def _render_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def query_items(params: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Return sorted query pairs, dropping ``None`` and empty-string values."""
    if not params:
        return []
    items = [
        (str(name), _render_param(value))
        for name, value in params.items()
        if value is not None and value != ""
    ]
    return sorted(items)


def build_query(params: Mapping[str, Any] | None) -> str:
    return urlencode(query_items(params))


def build_cache_key(endpoint: str, params: Mapping[str, Any] | None = None) -> str:
    """Generate the cache / in-flight key for a GET request.

    Args:
        endpoint: Path relative to the API base URL, e.g. ``/books``
        params: Optional query parameters

    Returns:
        ``endpoint`` alone, or ``endpoint?query`` with sorted parameters
    """
    query = build_query(params)
    return f"{endpoint}?{query}" if query else endpoint


def build_url(
    base_url: str, endpoint: str, params: Mapping[str, Any] | None = None
) -> str:
    """Join *base_url* and *endpoint* and append the filtered query string."""
    url = f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}" if base_url else endpoint
    query = build_query(params)
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


__all__ = ["build_cache_key", "build_query", "build_url", "query_items"]
