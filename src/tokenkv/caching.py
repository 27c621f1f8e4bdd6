"""Bounded in-process TTL cache.

Used by the token authority to remember positive membership results for a
short, configurable window.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with expiration metadata."""

    value: T
    expires_at: float
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_expired(self) -> bool:
        """Check if the entry has expired."""
        return time.monotonic() >= self.expires_at

    @property
    def ttl_remaining(self) -> float:
        """Get remaining TTL in seconds."""
        return max(0.0, self.expires_at - time.monotonic())


class TTLCache(Generic[T]):
    """Async-safe TTL cache with a size bound.

    Example:
        cache = TTLCache[bool](ttl_seconds=30)
        await cache.set("token", True)
        hit = await cache.get("token")
    """

    def __init__(self, ttl_seconds: float = 300, max_size: int = 1000) -> None:
        """Initialize cache.

        Args:
            ttl_seconds: Time-to-live for cache entries
            max_size: Maximum number of entries before eviction
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._cache: dict[str, CacheEntry[T]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> T | None:
        """Get a value from cache.

        Returns None if not found or expired.
        """
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            self._cache.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Optional TTL override
        """
        async with self._lock:
            if len(self._cache) >= self.max_size and key not in self._cache:
                self._evict_oldest()

            ttl_seconds = ttl if ttl is not None else self.ttl_seconds
            self._cache[key] = CacheEntry(
                value=value,
                expires_at=time.monotonic() + ttl_seconds,
            )

    def _evict_oldest(self) -> None:
        """Drop expired entries, then the oldest 10% if still full (caller holds lock)."""
        expired = [k for k, e in self._cache.items() if e.is_expired]
        for k in expired:
            del self._cache[k]
        if len(self._cache) < self.max_size:
            return

        sorted_keys = sorted(self._cache, key=lambda k: self._cache[k].created_at)
        evict_count = max(1, len(sorted_keys) // 10)
        for k in sorted_keys[:evict_count]:
            del self._cache[k]

    async def delete(self, key: str) -> bool:
        """Delete a key from cache.

        Returns True if key existed.
        """
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all entries."""
        async with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        """Get current cache size."""
        return len(self._cache)
