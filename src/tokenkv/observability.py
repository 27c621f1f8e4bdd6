"""Logging, request context and metrics for tokenkv.

Every log line carries the request-scoped fields bound by ``RequestContext``:
a request id, the masked token hint and the adapter protocol. Full tokens
never reach log output. Store operations report through ``track_operation``,
which emits a ``store.<op>`` timer and a ``store.<op>.<outcome>`` counter.
"""

import json
import logging
import sys
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from tokenkv.exceptions import TokenKVError

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
token_hint_var: ContextVar[str | None] = ContextVar("token_hint", default=None)
protocol_var: ContextVar[str | None] = ContextVar("protocol", default=None)

_CONTEXT_VARS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("token_hint", token_hint_var),
    ("protocol", protocol_var),
)

TOKEN_HINT_LENGTH = 8
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def mask_token(token: str | None) -> str:
    """Return a log-safe hint for a token (its first few characters)."""
    if not token:
        return "<none>"
    if len(token) <= TOKEN_HINT_LENGTH:
        return token[: TOKEN_HINT_LENGTH // 2] + "..."
    return token[:TOKEN_HINT_LENGTH] + "..."


def current_context() -> dict[str, str]:
    """Request-scoped fields bound in the current context."""
    context = {}
    for name, var in _CONTEXT_VARS:
        value = var.get()
        if value:
            context[name] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, merged with the request context."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "logger": record.name,
        }

        context = current_context()
        context.update(getattr(record, "context", None) or {})
        if context:
            data["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            data["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 3)

        return json.dumps(data, default=str)


class StructuredLogger:
    """Logger taking a context dict, an exception and a duration per call.

    Example:
        logger = get_logger("tokenkv.store")
        logger.warning("Unauthorized request", context={"op": "get"})
        logger.error("Redis get error", error=exc)
    """

    def __init__(self, name: str) -> None:
        # Level and handlers come from the "tokenkv" logger (configure_logging)
        self.logger = logging.getLogger(name)

    def log(
        self,
        level: int,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        exc_info = (type(error), error, error.__traceback__) if error is not None else None
        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={"context": context or {}, "duration_ms": duration_ms},
        )

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.log(logging.DEBUG, message, context, duration_ms=duration_ms)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log(logging.INFO, message, context)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.log(logging.WARNING, message, context, error)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.log(logging.ERROR, message, context, error)


class RequestContext:
    """Binds request id, token hint and protocol for the duration of a request.

    Example:
        async with RequestContext(token=token, protocol="http"):
            logger.info("Processing request")  # carries request_id and token_hint
    """

    def __init__(
        self,
        request_id: str | None = None,
        token: str | None = None,
        protocol: str | None = None,
    ) -> None:
        """Initialize request context.

        Args:
            request_id: Request identifier (generated if omitted)
            token: Caller's token; only its masked hint is kept
            protocol: Adapter handling the request ("http" or "rpc")
        """
        self.request_id = request_id or str(uuid.uuid4())
        self.token_hint = mask_token(token) if token else None
        self.protocol = protocol
        self._resets: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        values = {
            "request_id": self.request_id,
            "token_hint": self.token_hint,
            "protocol": self.protocol,
        }
        for name, var in _CONTEXT_VARS:
            if values[name]:
                self._resets.append((var, var.set(values[name])))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._resets:
            var, reset_token = self._resets.pop()
            var.reset(reset_token)

    async def __aenter__(self) -> "RequestContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> Callable[[], None]:
    """Register a callback(name, value, labels) for metric events.

    Returns:
        A function that unregisters the callback
    """
    _metric_callbacks.append(callback)

    def unregister() -> None:
        if callback in _metric_callbacks:
            _metric_callbacks.remove(callback)

    return unregister


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Send a metric to every registered callback, labelled with the protocol."""
    labels = dict(labels or {})
    protocol = protocol_var.get()
    if protocol:
        labels.setdefault("protocol", protocol)

    for callback in list(_metric_callbacks):
        try:
            callback(name, value, labels)
        except Exception:
            logging.getLogger(__name__).debug("Metric callback failed", exc_info=True)


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    """Emit a counter metric (increment by 1)."""
    emit_metric(name, 1.0, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a timer metric in milliseconds."""
    emit_metric(name, duration_ms, labels)


@contextmanager
def track_operation(
    op: str,
    logger: StructuredLogger,
    context: dict[str, Any] | None = None,
) -> Iterator[None]:
    """Time a store operation and report its outcome.

    The outcome is ``ok``, the class name of a raised ``TokenKVError``
    (e.g. ``NotFoundError``), or ``error`` for anything else. Successful
    operations are also logged at DEBUG with their duration.
    """
    outcome = "error"
    start = time.perf_counter()
    try:
        yield
        outcome = "ok"
    except TokenKVError as e:
        outcome = type(e).__name__
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        emit_timer(f"store.{op}", duration_ms)
        emit_counter(f"store.{op}.{outcome}")
        if outcome == "ok":
            logger.debug(op.upper(), context=context, duration_ms=duration_ms)


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Send ``tokenkv`` logs to stdout.

    Args:
        level: Minimum level name, e.g. "DEBUG"
        format: "json" for one object per line, "text" for plain lines
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if format == "json" else logging.Formatter(TEXT_FORMAT))

    package_logger = logging.getLogger("tokenkv")
    package_logger.setLevel(level.upper())
    package_logger.handlers[:] = [handler]


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically ``__name__``)."""
    return StructuredLogger(name)
