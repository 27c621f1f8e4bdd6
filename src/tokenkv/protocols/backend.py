"""Backend protocol for the external key-value engine."""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backend(Protocol):
    """Protocol for key-value backends (Redis, in-memory).

    All keys and values are byte strings. Faults surface as
    ``BackendUnavailableError``; a missing key is not a fault.
    """

    async def connect(self) -> None:
        """Establish the connection (pool). Safe to call more than once."""
        ...

    async def close(self) -> None:
        """Release the connection (pool)."""
        ...

    async def get(self, key: bytes) -> bytes | None:
        """Get a value by key. Returns None if not found."""
        ...

    async def set(self, key: bytes, value: bytes, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        ...

    async def delete(self, key: bytes) -> None:
        """Delete a key. No-op if key doesn't exist."""
        ...

    def scan(self, prefix: bytes) -> AsyncIterator[bytes]:
        """Lazily iterate keys starting with prefix. Single pass."""
        ...

    async def is_member(self, set_name: bytes, member: bytes) -> bool:
        """Check membership of member in the set set_name."""
        ...

    async def ping(self) -> bool:
        """Return True if the backend is reachable. Never raises."""
        ...
