"""Protocol adapters (REST and JSON-RPC) over the shared store core."""

from tokenkv.server.app import create_http_app, create_rpc_app
from tokenkv.server.errors import http_status_for, rpc_error_for
from tokenkv.server.middleware import BearerTokenMiddleware, RequestContextMiddleware
from tokenkv.server.routes import NDJSONResponse, create_routes, format_ndjson
from tokenkv.server.rpc import create_rpc_routes

__all__ = [
    "BearerTokenMiddleware",
    "NDJSONResponse",
    "RequestContextMiddleware",
    "create_http_app",
    "create_routes",
    "create_rpc_app",
    "create_rpc_routes",
    "format_ndjson",
    "http_status_for",
    "rpc_error_for",
]
