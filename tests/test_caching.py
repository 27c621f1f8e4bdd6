"""Tests for caching module."""

import asyncio
import time

import pytest

from tokenkv.caching import CacheEntry, TTLCache


class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_is_expired_false_when_fresh(self) -> None:
        """Entry is not expired when TTL hasn't passed."""
        entry = CacheEntry(value="test", expires_at=time.monotonic() + 100)
        assert not entry.is_expired

    def test_is_expired_true_when_stale(self) -> None:
        """Entry is expired when TTL has passed."""
        entry = CacheEntry(value="test", expires_at=time.monotonic() - 1)
        assert entry.is_expired

    def test_ttl_remaining(self) -> None:
        """TTL remaining returns correct value."""
        entry = CacheEntry(value="test", expires_at=time.monotonic() + 50)
        assert 49 < entry.ttl_remaining <= 50


class TestTTLCache:
    """Tests for TTLCache."""

    @pytest.mark.asyncio
    async def test_get_returns_none_for_missing(self) -> None:
        """Get returns None for missing keys."""
        cache: TTLCache[bool] = TTLCache(ttl_seconds=60)
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self) -> None:
        """Set and get work correctly."""
        cache: TTLCache[bool] = TTLCache(ttl_seconds=60)
        await cache.set("token", True)
        assert await cache.get("token") is True

    @pytest.mark.asyncio
    async def test_expired_returns_none(self) -> None:
        """Expired entries return None and are dropped."""
        cache: TTLCache[bool] = TTLCache(ttl_seconds=0.05)
        await cache.set("token", True)
        await asyncio.sleep(0.1)
        assert await cache.get("token") is None
        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_ttl_override(self) -> None:
        """Per-entry TTL overrides the default."""
        cache: TTLCache[bool] = TTLCache(ttl_seconds=0.05)
        await cache.set("token", True, ttl=60)
        await asyncio.sleep(0.1)
        assert await cache.get("token") is True

    @pytest.mark.asyncio
    async def test_max_size_evicts_oldest(self) -> None:
        """Cache never grows past max_size."""
        cache: TTLCache[int] = TTLCache(ttl_seconds=60, max_size=10)
        for i in range(25):
            await cache.set(f"k{i}", i)
        assert cache.size <= 10
        assert await cache.get("k24") == 24
        assert await cache.get("k0") is None

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        """Delete reports whether the key existed."""
        cache: TTLCache[bool] = TTLCache()
        await cache.set("token", True)
        assert await cache.delete("token") is True
        assert await cache.delete("token") is False

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        """Clear removes all entries."""
        cache: TTLCache[bool] = TTLCache()
        await cache.set("a", True)
        await cache.set("b", True)
        await cache.clear()
        assert cache.size == 0
