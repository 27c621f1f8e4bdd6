"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator

import pytest

from tokenkv.backends.memory import MemoryBackend
from tokenkv.exceptions import BackendUnavailableError
from tokenkv.store import KVStore

TOKEN = "abc123"
OTHER_TOKEN = "def456"


class RecordingBackend(MemoryBackend):
    """Memory backend that records every keyed operation."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.calls: list[tuple[str, bytes]] = []

    async def get(self, key: bytes) -> bytes | None:
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key: bytes, value: bytes, ttl: int | None = None) -> None:
        self.calls.append(("set", key))
        await super().set(key, value, ttl)

    async def delete(self, key: bytes) -> None:
        self.calls.append(("delete", key))
        await super().delete(key)

    def scan(self, prefix: bytes) -> AsyncIterator[bytes]:
        self.calls.append(("scan", prefix))
        return super().scan(prefix)


class BrokenBackend(MemoryBackend):
    """Backend whose data operations fail as if Redis were down.

    Token lookups still succeed so requests get past authorization.
    """

    def __init__(self, tokens: list[str]) -> None:
        super().__init__(sets={"tokens": tokens})

    async def get(self, key: bytes) -> bytes | None:
        raise BackendUnavailableError("connection refused")

    async def set(self, key: bytes, value: bytes, ttl: int | None = None) -> None:
        raise BackendUnavailableError("connection refused")

    async def delete(self, key: bytes) -> None:
        raise BackendUnavailableError("connection refused")

    async def scan(self, prefix: bytes) -> AsyncIterator[bytes]:
        raise BackendUnavailableError("connection refused")
        yield b""  # pragma: no cover

    async def ping(self) -> bool:
        return False


@pytest.fixture
def backend() -> RecordingBackend:
    """Memory backend with two provisioned tokens."""
    return RecordingBackend(sets={"tokens": [TOKEN, OTHER_TOKEN]})


@pytest.fixture
def store(backend: RecordingBackend) -> KVStore:
    """Store over the recording memory backend."""
    return KVStore(backend)


@pytest.fixture
def broken_store() -> KVStore:
    """Store whose backend is unreachable."""
    return KVStore(BrokenBackend(tokens=[TOKEN]))


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "backend": {"backend": "memory", "operation_timeout": 0.5},
        "auth": {"tokens_set": "tokens", "cache_ttl_seconds": 0},
        "server": {"host": "127.0.0.1", "http_port": 8080, "rpc_port": 9090},
        "logging": {"level": "DEBUG", "format": "text"},
    }
