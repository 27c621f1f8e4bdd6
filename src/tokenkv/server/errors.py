"""Mapping of store errors onto HTTP and JSON-RPC representations."""

from starlette.responses import JSONResponse

from tokenkv.exceptions import (
    BackendUnavailableError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    TokenKVError,
    UnauthorizedError,
)
from tokenkv.observability import get_logger

logger = get_logger(__name__)

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Application codes (server error range)
UNAUTHORIZED = -32001
BACKEND_UNAVAILABLE = -32003
NOT_FOUND = -32004

_HTTP_STATUS: list[tuple[type[TokenKVError], int]] = [
    (UnauthorizedError, 401),
    (InvalidArgumentError, 400),
    (NotFoundError, 404),
    (BackendUnavailableError, 503),
    (InternalError, 500),
]

_RPC_CODES: list[tuple[type[TokenKVError], int]] = [
    (UnauthorizedError, UNAUTHORIZED),
    (InvalidArgumentError, INVALID_PARAMS),
    (NotFoundError, NOT_FOUND),
    (BackendUnavailableError, BACKEND_UNAVAILABLE),
    (InternalError, INTERNAL_ERROR),
]


def public_message(exc: Exception) -> str:
    """Client-facing message; backend and internal details stay in the logs."""
    if isinstance(exc, UnauthorizedError):
        return "Unauthorized"
    if isinstance(exc, NotFoundError):
        return "Key not found"
    if isinstance(exc, InvalidArgumentError):
        return str(exc) or "Invalid request"
    if isinstance(exc, BackendUnavailableError):
        return "Backend unavailable"
    return "Internal error"


def _log(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        logger.debug("Key not found")
    elif isinstance(exc, (UnauthorizedError, InvalidArgumentError)):
        logger.warning(f"Request rejected: {public_message(exc)}")
    else:
        logger.error("Request failed", error=exc)


def http_status_for(exc: Exception) -> int:
    """HTTP status code for an exception raised by the store."""
    for exc_type, status in _HTTP_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def rpc_error_for(exc: Exception) -> tuple[int, str]:
    """JSON-RPC (code, message) for an exception raised by the store."""
    _log(exc)
    for exc_type, code in _RPC_CODES:
        if isinstance(exc, exc_type):
            return code, public_message(exc)
    return INTERNAL_ERROR, public_message(exc)


def error_response(exc: Exception) -> JSONResponse:
    """Build the JSON error response for an exception."""
    _log(exc)
    status = http_status_for(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse(
        {"error": public_message(exc), "status": status},
        status_code=status,
        headers=headers,
    )
