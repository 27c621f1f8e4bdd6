"""Request middleware for the protocol adapters."""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tokenkv.exceptions import UnauthorizedError
from tokenkv.observability import RequestContext
from tokenkv.server.errors import error_response

REQUEST_ID_HEADER = "X-Request-ID"


def bearer_token(auth_header: str) -> str | None:
    """Extract the token from an Authorization header value.

    Starlette decodes header bytes as latin-1; the token is re-read as UTF-8
    so it names the same token set member as the in-band RPC token.
    Returns None for a missing, malformed or non-UTF-8 token.
    """
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return token.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id (and protocol name) to the logging context.

    Reuses the caller's X-Request-ID when present and echoes it back.
    """

    def __init__(self, app: Any, protocol: str) -> None:
        """Initialize request context middleware.

        Args:
            app: The ASGI application
            protocol: Adapter name recorded in logs and metrics ("http", "rpc")
        """
        super().__init__(app)
        self.protocol = protocol

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        """Run the request inside a RequestContext."""
        async with RequestContext(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            protocol=self.protocol,
        ) as ctx:
            request.state.request_id = ctx.request_id
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = ctx.request_id
        return response


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Extracts the Bearer token and stores it on request.state.token.

    Only presence is checked here; the store validates the token itself
    on every operation. Paths in public_paths (e.g. /healthz) are skipped.
    """

    def __init__(
        self,
        app: Any,
        public_paths: list[str] | None = None,
    ) -> None:
        """Initialize bearer token middleware.

        Args:
            app: The ASGI application
            public_paths: Paths that don't require a token
        """
        super().__init__(app)
        self.public_paths = set(public_paths or ["/healthz"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        """Reject requests without a Bearer token with 401."""
        if request.url.path in self.public_paths:
            return await call_next(request)

        token = bearer_token(request.headers.get("Authorization", ""))
        if token is None:
            return error_response(UnauthorizedError())

        request.state.token = token
        async with RequestContext(
            request_id=getattr(request.state, "request_id", None),
            token=token,
            protocol="http",
        ):
            return await call_next(request)
