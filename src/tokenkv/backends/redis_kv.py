"""Redis key-value backend.

Wraps a ``redis.asyncio`` client on a blocking connection pool. Every call
is bounded by an operation timeout and retried with capped exponential
backoff on connection or timeout failures before surfacing
``BackendUnavailableError``.
"""

import asyncio
import re
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tokenkv.config import DEFAULT_REDIS_URL
from tokenkv.exceptions import BackendUnavailableError
from tokenkv.observability import emit_counter, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_GLOB_SPECIAL = re.compile(rb"([\\*?\[\]])")

_TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)


def escape_glob(value: bytes) -> bytes:
    """Escape Redis glob metacharacters so value matches literally."""
    return _GLOB_SPECIAL.sub(rb"\\\1", value)


class RedisBackend:
    """Redis backend for tokenkv.

    Example:
        backend = RedisBackend(redis_url="redis://127.0.0.1:6379")
        await backend.connect()
        await backend.set(b"key", b"value", ttl=60)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        max_connections: int = 50,
        pool_timeout: float = 5.0,
        operation_timeout: float = 2.0,
        retry_attempts: int = 2,
        retry_backoff_base: float = 0.05,
        retry_backoff_cap: float = 1.0,
        scan_count: int = 500,
        scan_dedupe_window: int = 10000,
        client: redis.Redis | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Redis backend.

        Args:
            redis_url: Redis connection URL
            max_connections: Connection pool size
            pool_timeout: Seconds to wait for a free pooled connection
            operation_timeout: Upper bound in seconds for a single call
            retry_attempts: Retries after a connection/timeout failure (min 1)
            retry_backoff_base: First backoff delay in seconds
            retry_backoff_cap: Maximum backoff delay in seconds
            scan_count: COUNT hint for SCAN pages
            scan_dedupe_window: Recent keys remembered to drop SCAN duplicates
            client: Optional preconfigured client (for testing or DI)
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.redis_url = redis_url or DEFAULT_REDIS_URL
        self.max_connections = max_connections
        self.pool_timeout = pool_timeout
        self.operation_timeout = operation_timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_base = retry_backoff_base
        self.retry_backoff_cap = retry_backoff_cap
        self.scan_count = scan_count
        self.scan_dedupe_window = max(scan_dedupe_window, scan_count)
        self._client = client
        self._pool: redis.BlockingConnectionPool | None = None

    def _ensure_client(self) -> redis.Redis:
        """Create the pool and client on first use."""
        if self._client is None:
            try:
                self._pool = redis.BlockingConnectionPool.from_url(
                    self.redis_url,
                    max_connections=self.max_connections,
                    timeout=self.pool_timeout,
                    socket_timeout=self.operation_timeout,
                    socket_connect_timeout=self.operation_timeout,
                    socket_keepalive=True,
                )
            except ValueError as e:
                raise BackendUnavailableError(f"Invalid Redis URL: {e}") from e
            self._client = redis.Redis(connection_pool=self._pool)
        return self._client

    async def connect(self) -> None:
        """Create the pool and verify the server answers."""
        logger.info("Connecting to Redis", context={"url": _redact_url(self.redis_url)})
        await self._call("ping", lambda c: c.ping())
        logger.info("Redis connected")

    async def close(self) -> None:
        """Close the client and its pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        logger.info("Redis disconnected")

    async def _reset_connections(self) -> None:
        """Drop idle connections so the next attempt reconnects."""
        if self._pool is None:
            return
        try:
            await self._pool.disconnect(inuse_connections=False)
        except RedisError:
            pass

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_backoff_base * (2 ** attempt), self.retry_backoff_cap)

    async def _call(self, op: str, func: Callable[[redis.Redis], Awaitable[T]]) -> T:
        """Run one Redis command with timeout and bounded retries."""
        client = self._ensure_client()
        last_error: BaseException | None = None

        for attempt in range(self.retry_attempts + 1):
            try:
                return await asyncio.wait_for(func(client), timeout=self.operation_timeout)
            except _TRANSIENT_ERRORS as e:
                last_error = e
                if attempt >= self.retry_attempts:
                    break
                delay = self._backoff(attempt)
                logger.warning(
                    f"Redis {op} failed, retrying",
                    context={"attempt": attempt + 1, "delay_s": delay},
                    error=e,
                )
                emit_counter("backend.retry", {"op": op})
                await self._reset_connections()
                await asyncio.sleep(delay)
            except RedisError as e:
                logger.error(f"Redis {op} error", error=e)
                emit_counter("backend.error", {"op": op})
                raise BackendUnavailableError(f"Backend {op} failed: {e}") from e

        logger.error(
            f"Redis {op} unavailable after retries",
            context={"attempts": self.retry_attempts + 1},
            error=last_error if isinstance(last_error, Exception) else None,
        )
        emit_counter("backend.error", {"op": op})
        raise BackendUnavailableError(f"Backend unavailable during {op}") from last_error

    async def get(self, key: bytes) -> bytes | None:
        """Get a value by key."""
        return await self._call("get", lambda c: c.get(key))

    async def set(self, key: bytes, value: bytes, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        if ttl:
            await self._call("set", lambda c: c.set(key, value, ex=ttl))
        else:
            await self._call("set", lambda c: c.set(key, value))

    async def delete(self, key: bytes) -> None:
        """Delete a key. DEL on a missing key is a no-op."""
        await self._call("delete", lambda c: c.delete(key))

    async def scan(self, prefix: bytes) -> AsyncIterator[bytes]:
        """Iterate keys starting with prefix using SCAN pages.

        SCAN can report a key more than once; duplicates are dropped within
        the last ``scan_dedupe_window`` keys, so memory stays bounded on large
        namespaces. A key repeated further apart than that (only possible
        while the keyspace is rehashing) is yielded again.
        """
        pattern = escape_glob(prefix) + b"*"
        seen: set[bytes] = set()
        recent: deque[bytes] = deque()
        cursor: int = 0

        while True:
            page_cursor = cursor
            cursor, keys = await self._call(
                "scan",
                lambda c: c.scan(cursor=page_cursor, match=pattern, count=self.scan_count),
            )
            for key in keys:
                if isinstance(key, str):
                    key = key.encode("utf-8")
                if key in seen:
                    continue
                seen.add(key)
                recent.append(key)
                if len(recent) > self.scan_dedupe_window:
                    seen.discard(recent.popleft())
                yield key
            if int(cursor) == 0:
                break

    async def is_member(self, set_name: bytes, member: bytes) -> bool:
        """Check set membership with SISMEMBER."""
        result = await self._call("sismember", lambda c: c.sismember(set_name, member))
        return bool(result)

    async def ping(self) -> bool:
        """Single PING bounded by the operation timeout. Never raises."""
        try:
            client = self._ensure_client()
            result = await asyncio.wait_for(client.ping(), timeout=self.operation_timeout)
        except (RedisError, BackendUnavailableError, asyncio.TimeoutError, OSError) as e:
            logger.warning("Redis ping failed", error=e)
            return False
        return bool(result)


def _redact_url(url: str) -> str:
    """Hide the password part of a redis:// URL."""
    return re.sub(r"(://[^:/@]*:)[^@]*@", r"\1***@", url)
