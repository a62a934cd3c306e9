"""
In-memory response cache for library API GET requests.

Entries carry their own TTL and are evicted lazily when a read finds them
expired. Only endpoints on an explicit allow-list are ever stored; mutating
calls clear entries by substring match on the key.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from libraryclient.core.metrics import record_cache_event

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    """Stored response. Replaced wholesale, never mutated."""

    key: str
    data: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


def is_cacheable(endpoint: str, prefixes: Iterable[str]) -> bool:
    """Check *endpoint* against the allow-list of cacheable endpoint prefixes."""
    path = endpoint.split("?", 1)[0]
    for prefix in prefixes:
        if path == prefix or path.startswith(f"{prefix}/"):
            return True
    return False


class CacheStore:
    """
    TTL cache keyed by request key.

    The lock makes the check-expiry-then-evict and overwrite sequences atomic
    when the store is shared between threads.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl < 0:
            raise ValueError(f"TTL value cannot be negative: {default_ttl}")
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.default_ttl = default_ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or *default* if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                record_cache_event("response", "miss")
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                record_cache_event("response", "expired")
                return default
        record_cache_event("response", "hit")
        return entry.data

    def lookup(self, key: str) -> tuple[bool, Any]:
        """Return ``(hit, value)`` so cached ``None`` values are distinguishable."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            return False, None
        return True, value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl < 0:
            raise ValueError(f"TTL value for {key} cannot be negative: {effective_ttl}")
        entry = CacheEntry(key=key, data=value, stored_at=self._clock(), ttl=effective_ttl)
        with self._lock:
            self._entries[key] = entry
        record_cache_event("response", "store")

    def invalidate(self, pattern: str | None = None) -> int:
        """Remove every key containing *pattern*, or everything when omitted.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if not pattern:
                removed = len(self._entries)
                self._entries.clear()
            else:
                doomed = [key for key in self._entries if pattern in key]
                for key in doomed:
                    del self._entries[key]
                removed = len(doomed)
        if removed:
            record_cache_event("response", "invalidate")
            logger.debug("Invalidated %d cache entries matching %r", removed, pattern)
        return removed

    def clear(self) -> None:
        self.invalidate()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheEntry", "CacheStore", "DEFAULT_TTL_SECONDS", "is_cacheable"]
