"""ASGI applications for the two protocol adapters."""

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from tokenkv.server.middleware import BearerTokenMiddleware, RequestContextMiddleware
from tokenkv.server.routes import create_routes
from tokenkv.server.rpc import create_rpc_routes
from tokenkv.store import KVStore

PUBLIC_PATHS = ["/healthz"]


def create_http_app(store: KVStore, cors_origins: list[str] | None = None) -> Starlette:
    """Create the REST application.

    Args:
        store: The shared store core
        cors_origins: Allowed CORS origins (none configured = CORS disabled)

    Returns:
        Starlette application
    """
    # Outermost first: CORS -> request context -> bearer token -> route
    middleware = []
    if cors_origins:
        middleware.append(
            Middleware(
                CORSMiddleware,
                allow_origins=cors_origins,
                allow_methods=["GET", "POST", "PUT", "DELETE"],
                allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
            )
        )
    middleware += [
        Middleware(RequestContextMiddleware, protocol="http"),
        Middleware(BearerTokenMiddleware, public_paths=PUBLIC_PATHS),
    ]

    return Starlette(routes=create_routes(store), middleware=middleware)


def create_rpc_app(store: KVStore) -> Starlette:
    """Create the JSON-RPC application.

    Args:
        store: The shared store core

    Returns:
        Starlette application
    """
    return Starlette(
        routes=create_rpc_routes(store),
        middleware=[Middleware(RequestContextMiddleware, protocol="rpc")],
    )
