"""Async client for the tokenkv REST adapter."""

import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from tokenkv.exceptions import (
    BackendUnavailableError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthorizedError,
)


class KVClient:
    """HTTP client speaking the REST adapter's protocol.

    Raises the same exception types as the store core.

    Example:
        async with KVClient("http://127.0.0.1:3000", token="abc123") as kv:
            await kv.set("user:1", "Alice", ttl=60)
            name = await kv.get("user:1")
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: Server URL, e.g. "http://127.0.0.1:3000"
            token: Bearer token
            timeout: Request timeout in seconds
            transport: Optional transport (e.g. httpx.ASGITransport in tests)
        """
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": b"Bearer " + token.encode("utf-8")},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "KVClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @staticmethod
    def _path(key: str) -> str:
        return "/keys/" + quote(key, safe="")

    @staticmethod
    def _raise_for_status(response: httpx.Response, key: str = "") -> None:
        if response.is_success:
            return
        try:
            message = response.json().get("error", response.reason_phrase)
        except (json.JSONDecodeError, AttributeError):
            message = response.reason_phrase
        status = response.status_code
        if status == 401:
            raise UnauthorizedError()
        if status == 404:
            raise NotFoundError(key)
        if status == 400:
            raise InvalidArgumentError(message)
        if status == 503:
            raise BackendUnavailableError(message)
        raise InternalError(f"HTTP {status}: {message}")

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"Request failed: {e}") from e

    async def get(self, key: str) -> str:
        """Get a value."""
        response = await self._request("GET", self._path(key))
        self._raise_for_status(response, key)
        return response.json()["value"]

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        body: dict[str, Any] = {"value": value}
        if ttl is not None:
            body["ttl_seconds"] = ttl
        response = await self._request("POST", self._path(key), json=body)
        self._raise_for_status(response, key)

    async def delete(self, key: str) -> None:
        """Delete a key."""
        response = await self._request("DELETE", self._path(key))
        self._raise_for_status(response, key)

    async def iter_keys(self, prefix: str = "") -> AsyncIterator[str]:
        """Stream keys as the server produces them."""
        try:
            async with self._client.stream("GET", "/keys", params={"prefix": prefix}) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response)
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    item = json.loads(line)
                    if "error" in item:
                        raise BackendUnavailableError(item["error"])
                    yield item["key"]
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"Request failed: {e}") from e

    async def list(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix."""
        return [key async for key in self.iter_keys(prefix)]

    async def health_check(self) -> bool:
        """Return True if the server reports a healthy backend."""
        try:
            response = await self._client.get("/healthz")
        except httpx.TransportError:
            return False
        return response.status_code == 200
