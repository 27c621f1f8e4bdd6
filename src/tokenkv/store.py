"""Store core shared by every protocol adapter.

``KVStore`` composes the token authority, the namespace codec and a backend
into the get/set/delete/list/health_check contract. Every keyed operation
validates the token first; an unknown token raises ``UnauthorizedError``
before any namespaced key is read or written.
"""

from collections.abc import AsyncIterator
from typing import Any

from tokenkv.auth import TokenAuthority
from tokenkv.config import Config
from tokenkv.exceptions import (
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthorizedError,
)
from tokenkv.namespace import NamespaceCodec
from tokenkv.observability import emit_counter, get_logger, track_operation
from tokenkv.protocols import Backend

logger = get_logger(__name__)


class KeyStream:
    """Lazy, single-pass stream of logical keys from a list operation.

    Iterate with ``async for``; once exhausted it stays exhausted.
    """

    def __init__(
        self,
        token: str,
        prefix: str,
        codec: NamespaceCodec,
        source: AsyncIterator[bytes],
    ) -> None:
        self._token = token
        self._prefix = prefix
        self._codec = codec
        self._source = source
        self._exhausted = False
        self.count = 0

    def __aiter__(self) -> "KeyStream":
        return self

    async def __anext__(self) -> str:
        if self._exhausted:
            raise StopAsyncIteration
        while True:
            try:
                backend_key = await self._source.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                raise
            key = self._codec.decode(self._token, backend_key)
            if key and key.startswith(self._prefix):
                self.count += 1
                return key

    async def collect(self) -> list[str]:
        """Drain the remaining keys into a list."""
        return [key async for key in self]

    async def aclose(self) -> None:
        """Stop the underlying scan early."""
        self._exhausted = True
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()


class KVStore:
    """Token-namespaced key-value store.

    Example:
        store = KVStore(MemoryBackend(sets={"tokens": ["abc123"]}))
        await store.set("abc123", "user:1", "Alice")
        value = await store.get("abc123", "user:1")
    """

    def __init__(
        self,
        backend: Backend,
        authority: TokenAuthority | None = None,
        codec: NamespaceCodec | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Backend connector (shared, injected)
            authority: Token authority; defaults to one reading the "tokens" set
            codec: Namespace codec
        """
        self.backend = backend
        self.authority = authority or TokenAuthority(backend)
        self.codec = codec or NamespaceCodec()

    @classmethod
    def from_config(cls, config: Config) -> "KVStore":
        """Build the backend and authority described by config."""
        from tokenkv.plugins import create_backend_from_config

        backend = create_backend_from_config(config.backend)
        return cls(backend, TokenAuthority.from_config(backend, config.auth))

    async def connect(self) -> None:
        """Connect the backend."""
        await self.backend.connect()

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()

    async def __aenter__(self) -> "KVStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _authorize(self, token: str, op: str) -> None:
        if not await self.authority.validate(token):
            logger.warning("Unauthorized request", context={"op": op})
            raise UnauthorizedError()

    @staticmethod
    def _require_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidArgumentError("Key must be a non-empty string")

    async def get_bytes(self, token: str, key: str) -> bytes:
        """Get the raw value stored under key.

        Raises:
            UnauthorizedError, InvalidArgumentError, NotFoundError,
            BackendUnavailableError
        """
        with track_operation("get", logger, {"key": key}):
            await self._authorize(token, "get")
            self._require_key(key)
            value = await self.backend.get(self.codec.encode(token, key))
            if value is None:
                raise NotFoundError(key)
        return value

    async def get(self, token: str, key: str) -> str:
        """Get the value stored under key as text.

        Raises:
            UnauthorizedError, InvalidArgumentError, NotFoundError,
            BackendUnavailableError, InternalError
        """
        value = await self.get_bytes(token, key)
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InternalError(f"Stored value for {key} is not valid UTF-8") from e

    async def set(
        self,
        token: str,
        key: str,
        value: str | bytes,
        ttl: int | None = None,
    ) -> None:
        """Store value under key, optionally expiring after ttl seconds.

        Raises:
            UnauthorizedError, InvalidArgumentError, BackendUnavailableError
        """
        with track_operation("set", logger, {"key": key, "ttl": ttl}):
            await self._authorize(token, "set")
            self._require_key(key)
            if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0):
                raise InvalidArgumentError("TTL must be a positive integer number of seconds")
            if isinstance(value, str):
                try:
                    payload = value.encode("utf-8")
                except UnicodeEncodeError as e:
                    raise InvalidArgumentError("Value must be valid Unicode text") from e
            elif isinstance(value, (bytes, bytearray)):
                payload = bytes(value)
            else:
                raise InvalidArgumentError("Value must be a string or bytes")
            await self.backend.set(self.codec.encode(token, key), payload, ttl)

    async def delete(self, token: str, key: str) -> None:
        """Delete key. Deleting a missing key succeeds.

        Raises:
            UnauthorizedError, InvalidArgumentError, BackendUnavailableError
        """
        with track_operation("delete", logger, {"key": key}):
            await self._authorize(token, "delete")
            self._require_key(key)
            await self.backend.delete(self.codec.encode(token, key))

    async def list(self, token: str, prefix: str = "") -> KeyStream:
        """List logical keys of token starting with prefix.

        Authorization happens here; the returned stream then pulls keys from
        the backend lazily. Order is whatever the backend yields.

        Raises:
            UnauthorizedError, InvalidArgumentError, BackendUnavailableError
            (the latter also while iterating)
        """
        prefix = prefix or ""
        with track_operation("list", logger, {"prefix": prefix}):
            await self._authorize(token, "list")
            if not isinstance(prefix, str):
                raise InvalidArgumentError("Prefix must be a string")
            source = self.backend.scan(self.codec.prefix(token, prefix))
        return KeyStream(token, prefix, self.codec, source)

    async def health_check(self) -> bool:
        """Return backend reachability. Never raises."""
        try:
            healthy = bool(await self.backend.ping())
        except Exception as e:
            logger.error("Health check failed", error=e)
            healthy = False
        emit_counter("store.health.ok" if healthy else "store.health.failed")
        return healthy
