"""tokenkv - a token-namespaced key-value store over Redis."""

from tokenkv.auth import TokenAuthority
from tokenkv.config import Config
from tokenkv.exceptions import (
    BackendUnavailableError,
    ConfigError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    TokenKVError,
    UnauthorizedError,
)
from tokenkv.namespace import NamespaceCodec
from tokenkv.observability import (
    RequestContext,
    StructuredLogger,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from tokenkv.store import KeyStream, KVStore

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "KVStore",
    "KeyStream",
    "NamespaceCodec",
    "TokenAuthority",
    # Errors
    "BackendUnavailableError",
    "ConfigError",
    "InternalError",
    "InvalidArgumentError",
    "NotFoundError",
    "TokenKVError",
    "UnauthorizedError",
    # Observability
    "RequestContext",
    "StructuredLogger",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
