"""In-memory key-value backend."""

import asyncio
import time
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """A stored value with optional expiration."""

    value: bytes
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        if self.expires_at is None:
            return False
        return time.monotonic() >= self.expires_at


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


class MemoryBackend:
    """In-memory key-value backend.

    Suitable for development and testing. Data is lost on restart.
    Sets are kept separately from plain keys, as in Redis.
    """

    def __init__(
        self,
        sets: dict[str, Iterable[str | bytes]] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize memory backend.

        Args:
            sets: Optional initial sets, e.g. {"tokens": ["abc123"]}
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._data: dict[bytes, CacheEntry] = {}
        self._sets: dict[bytes, set[bytes]] = {}
        self._lock = asyncio.Lock()
        for name, members in (sets or {}).items():
            self._sets[_as_bytes(name)] = {_as_bytes(m) for m in members}

    async def connect(self) -> None:
        """Nothing to connect."""

    async def close(self) -> None:
        """Nothing to release."""

    async def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: bytes, value: bytes, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        expires_at = time.monotonic() + ttl if ttl else None
        async with self._lock:
            self._data[key] = CacheEntry(value=value, expires_at=expires_at)

    async def delete(self, key: bytes) -> None:
        """Delete a key."""
        async with self._lock:
            self._data.pop(key, None)

    async def scan(self, prefix: bytes) -> AsyncIterator[bytes]:
        """Iterate keys starting with prefix.

        Matching keys are snapshotted when iteration starts; keys that expire
        or are deleted before being reached are skipped.
        """
        async with self._lock:
            candidates = [k for k in self._data if k.startswith(prefix)]

        for key in candidates:
            entry = self._data.get(key)
            if entry is None or entry.is_expired():
                continue
            yield key

    async def is_member(self, set_name: bytes, member: bytes) -> bool:
        """Check set membership."""
        return member in self._sets.get(set_name, ())

    async def ping(self) -> bool:
        """Always reachable."""
        return True

    def add_member(self, set_name: str | bytes, member: str | bytes) -> None:
        """Add a member to a set (token provisioning in tests/dev)."""
        self._sets.setdefault(_as_bytes(set_name), set()).add(_as_bytes(member))

    def remove_member(self, set_name: str | bytes, member: str | bytes) -> None:
        """Remove a member from a set. No-op if absent."""
        self._sets.get(_as_bytes(set_name), set()).discard(_as_bytes(member))

    async def clear(self) -> None:
        """Clear all keys (sets are kept). Useful for testing."""
        async with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return sum(1 for e in self._data.values() if not e.is_expired())
