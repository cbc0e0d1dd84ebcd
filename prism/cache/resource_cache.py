"""
Resource Cache — URL-keyed TTL cache of fetched resource bodies.

Lets repeated scans reuse script and stylesheet bodies instead of refetching
them, the way a browser serves `force-cache` fetches.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from prism.config import settings


@dataclass
class CacheEntry:
    """A cached body for a single URL."""

    body: str
    size_bytes: int
    ttl_seconds: float
    timestamp: float = field(default_factory=time.time)

    @property
    def is_expired(self) -> bool:
        return (time.time() - self.timestamp) > self.ttl_seconds


class ResourceCache:
    """
    In-memory resource cache keyed by URL.

    Only successful, in-limit bodies are stored; failures are always refetched.
    """

    def __init__(self, ttl_seconds: float | None = None, max_entries: int = 512) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self.max_entries = max_entries
        self._store: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> CacheEntry | None:
        """Return the cached entry, or None if absent or expired."""
        entry = self._store.get(url)

        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired:
            del self._store[url]
            self.misses += 1
            return None

        self.hits += 1
        return entry

    def put(self, url: str, body: str, size_bytes: int) -> None:
        """Cache a body, evicting the oldest entry when full."""
        if url not in self._store and len(self._store) >= self.max_entries:
            oldest = next(iter(self._store))
            del self._store[oldest]
        self._store[url] = CacheEntry(
            body=body, size_bytes=size_bytes, ttl_seconds=self.ttl_seconds
        )

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    @property
    def size(self) -> int:
        """Number of cached entries."""
        return len(self._store)

    def stats(self) -> dict[str, Any]:
        """Cache statistics."""
        expired = sum(1 for e in self._store.values() if e.is_expired)
        return {
            "total_entries": len(self._store),
            "expired_entries": expired,
            "active_entries": len(self._store) - expired,
            "hits": self.hits,
            "misses": self.misses,
        }
