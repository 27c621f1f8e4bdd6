"""REST route handlers.

Keys live under ``/keys/{key}``; listing streams NDJSON (one JSON object
per line) so large namespaces are never buffered in full.
"""

import functools
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from tokenkv.exceptions import InvalidArgumentError, TokenKVError
from tokenkv.observability import get_logger
from tokenkv.server.errors import error_response, public_message
from tokenkv.store import KVStore, KeyStream

logger = get_logger(__name__)


def handle_store_errors(
    handler: Callable[[Request], Awaitable[Response]],
) -> Callable[[Request], Awaitable[Response]]:
    """Decorator turning store exceptions into JSON error responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            return await handler(request)
        except TokenKVError as e:
            return error_response(e)
        except Exception as e:
            logger.error("Unhandled error in route handler", error=e)
            return JSONResponse({"error": "Internal error", "status": 500}, status_code=500)

    return wrapper


class NDJSONResponse(StreamingResponse):
    """Newline-delimited JSON streaming response."""

    media_type = "application/x-ndjson"

    def __init__(
        self,
        content: AsyncIterator[str],
        status_code: int = 200,
        headers: dict | None = None,
    ) -> None:
        ndjson_headers = {
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        }
        if headers:
            ndjson_headers.update(headers)

        super().__init__(
            content=content,
            status_code=status_code,
            headers=ndjson_headers,
            media_type=self.media_type,
        )


def format_ndjson(data: dict) -> str:
    """Format data as NDJSON line.

    Args:
        data: Data to serialize

    Returns:
        JSON string followed by newline
    """
    return json.dumps(data) + "\n"


async def stream_keys(keys: KeyStream) -> AsyncIterator[str]:
    """Render a key stream as NDJSON lines.

    A failure mid-stream cannot change the status code any more, so it is
    reported as a final ``{"error": ...}`` line.
    """
    try:
        async for key in keys:
            yield format_ndjson({"key": key})
    except TokenKVError as e:
        logger.error("List stream failed", error=e)
        yield format_ndjson({"error": public_message(e)})
    finally:
        await keys.aclose()


def create_routes(store: KVStore) -> list[Route]:
    """Create REST routes bound to a store.

    Args:
        store: The shared store core

    Returns:
        List of Starlette routes
    """

    async def healthz(request: Request) -> Response:
        """Health check endpoint. 503 when the backend is unreachable."""
        healthy = await store.health_check()
        return JSONResponse(
            {
                "status": "ok" if healthy else "unhealthy",
                "timestamp": time.time(),
            },
            status_code=200 if healthy else 503,
        )

    @handle_store_errors
    async def list_keys(request: Request) -> Response:
        """List the caller's keys, optionally filtered by ?prefix=."""
        prefix = request.query_params.get("prefix", "")
        keys = await store.list(request.state.token, prefix)
        return NDJSONResponse(stream_keys(keys))

    @handle_store_errors
    async def get_key(request: Request) -> Response:
        """Get a value."""
        key = request.path_params["key"]
        value = await store.get(request.state.token, key)
        return JSONResponse({"value": value})

    @handle_store_errors
    async def put_key(request: Request) -> Response:
        """Set a value from {"value": ..., "ttl_seconds": ...}."""
        key = request.path_params["key"]
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidArgumentError("Invalid JSON body") from None

        if not isinstance(body, dict):
            raise InvalidArgumentError("Request body must be a JSON object")
        value = body.get("value")
        if not isinstance(value, str):
            raise InvalidArgumentError("Missing required field: value (string)")

        await store.set(request.state.token, key, value, body.get("ttl_seconds"))
        return JSONResponse({"message": "OK"})

    @handle_store_errors
    async def delete_key(request: Request) -> Response:
        """Delete a value. Succeeds for missing keys too."""
        key = request.path_params["key"]
        await store.delete(request.state.token, key)
        return JSONResponse({"message": "OK"})

    return [
        Route("/healthz", healthz, methods=["GET"]),
        Route("/keys", list_keys, methods=["GET"]),
        Route("/keys/{key:path}", get_key, methods=["GET"]),
        Route("/keys/{key:path}", put_key, methods=["POST", "PUT"]),
        Route("/keys/{key:path}", delete_key, methods=["DELETE"]),
    ]
