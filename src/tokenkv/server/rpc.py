"""JSON-RPC 2.0 adapter.

A single ``POST /rpc`` endpoint exposes the store methods. The token is
carried in-band in ``params``::

    {"jsonrpc": "2.0", "id": 1, "method": "Get",
     "params": {"token": "abc123", "key": "user:1"}}

Methods: Get, Set, Delete, List, HealthCheck. A missing key is not an
error for Get; it returns ``{"value": "", "found": false}``.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from tokenkv.exceptions import InvalidArgumentError, NotFoundError, TokenKVError
from tokenkv.observability import RequestContext, get_logger
from tokenkv.server import errors
from tokenkv.store import KVStore

logger = get_logger(__name__)

JSONRPC_VERSION = "2.0"

Handler = Callable[[KVStore, dict[str, Any]], Awaitable[dict[str, Any]]]


class RPCError(Exception):
    """A JSON-RPC protocol-level error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _param(params: dict[str, Any], name: str, default: Any = None, required: bool = False) -> Any:
    if name not in params or params[name] is None:
        if required:
            raise InvalidArgumentError(f"Missing required param: {name}")
        return default
    return params[name]


def _str_param(params: dict[str, Any], name: str, default: str = "", required: bool = False) -> str:
    value = _param(params, name, default, required)
    if not isinstance(value, str):
        raise InvalidArgumentError(f"Param {name} must be a string")
    return value


async def rpc_get(store: KVStore, params: dict[str, Any]) -> dict[str, Any]:
    """Get a value; absence is reported as found=false."""
    try:
        value = await store.get(_str_param(params, "token"), _str_param(params, "key"))
    except NotFoundError:
        return {"value": "", "found": False}
    return {"value": value, "found": True}


async def rpc_set(store: KVStore, params: dict[str, Any]) -> dict[str, Any]:
    """Set a value with optional ttl_seconds."""
    await store.set(
        _str_param(params, "token"),
        _str_param(params, "key"),
        _str_param(params, "value", required=True),
        _param(params, "ttl_seconds"),
    )
    return {"success": True, "message": "OK"}


async def rpc_delete(store: KVStore, params: dict[str, Any]) -> dict[str, Any]:
    """Delete a value."""
    await store.delete(_str_param(params, "token"), _str_param(params, "key"))
    return {"success": True, "message": "OK"}


async def rpc_list(store: KVStore, params: dict[str, Any]) -> dict[str, Any]:
    """List keys by prefix."""
    keys = await store.list(_str_param(params, "token"), _str_param(params, "prefix"))
    return {"keys": await keys.collect()}


async def rpc_health_check(store: KVStore, params: dict[str, Any]) -> dict[str, Any]:
    """Report backend reachability."""
    healthy = await store.health_check()
    return {"healthy": healthy, "message": "OK" if healthy else "Unhealthy"}


METHODS: dict[str, Handler] = {
    "Get": rpc_get,
    "Set": rpc_set,
    "Delete": rpc_delete,
    "List": rpc_list,
    "HealthCheck": rpc_health_check,
}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


async def handle_call(store: KVStore, call: Any) -> dict[str, Any] | None:
    """Execute one JSON-RPC call object.

    Returns the response object, or None for notifications.
    """
    if not isinstance(call, dict):
        return _error(None, errors.INVALID_REQUEST, "Invalid Request")

    request_id = call.get("id")
    is_notification = "id" not in call

    try:
        if call.get("jsonrpc") != JSONRPC_VERSION or not isinstance(call.get("method"), str):
            raise RPCError(errors.INVALID_REQUEST, "Invalid Request")

        method = call["method"]
        handler = METHODS.get(method)
        if handler is None:
            raise RPCError(errors.METHOD_NOT_FOUND, f"Method not found: {method}")

        params = call.get("params", {})
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise RPCError(errors.INVALID_PARAMS, "Params must be an object")

        token = params.get("token") if isinstance(params.get("token"), str) else None
        async with RequestContext(token=token, protocol="rpc"):
            result = await handler(store, params)

    except RPCError as e:
        response = _error(request_id, e.code, e.message)
    except TokenKVError as e:
        code, message = errors.rpc_error_for(e)
        response = _error(request_id, code, message)
    except Exception as e:
        logger.error("Unhandled error in RPC handler", error=e)
        response = _error(request_id, errors.INTERNAL_ERROR, "Internal error")
    else:
        response = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    if is_notification:
        return None
    return response


def create_rpc_routes(store: KVStore) -> list[Route]:
    """Create the JSON-RPC endpoint bound to a store.

    Args:
        store: The shared store core

    Returns:
        List of Starlette routes
    """

    async def rpc(request: Request) -> Response:
        """JSON-RPC endpoint (single call or batch)."""
        try:
            payload = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse(_error(None, errors.PARSE_ERROR, "Parse error"))

        if isinstance(payload, list):
            if not payload:
                return JSONResponse(_error(None, errors.INVALID_REQUEST, "Invalid Request"))
            responses = []
            for call in payload:
                response = await handle_call(store, call)
                if response is not None:
                    responses.append(response)
            if not responses:
                return Response(status_code=204)
            return JSONResponse(responses)

        response = await handle_call(store, payload)
        if response is None:
            return Response(status_code=204)
        return JSONResponse(response)

    async def healthz(request: Request) -> Response:
        """Health check endpoint for load balancers."""
        healthy = await store.health_check()
        return JSONResponse(
            {"healthy": healthy, "message": "OK" if healthy else "Unhealthy"},
            status_code=200 if healthy else 503,
        )

    return [
        Route("/rpc", rpc, methods=["POST"]),
        Route("/healthz", healthz, methods=["GET"]),
    ]
