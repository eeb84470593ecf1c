"""
Structured logging for the stock kernel.

Every record under the ``stock_kernel`` logger is written as one JSON
object per line:

    {"ts": ..., "level": "INFO", "logger": "stock_kernel.services.adjustment",
     "message": "stock_adjustment_completed", "correlation_id": ...,
     "operation": "adjust", "variant_id": "var-1", "status": "applied", ...}

Fields bound with ``LogContext.bind`` are merged into every record emitted
inside the block, so one adjustment can be followed through the ledger,
the counter row and the lot registry by its ``correlation_id``.  Fields
passed through ``extra=`` follow; a bound field wins over an ``extra`` of
the same name.

Typed kernel errors logged with ``exc_info`` contribute their ``code`` and
structured attributes as ``exc_*`` fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LOGGER_NAMESPACE",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterator, TextIO
from uuid import UUID

from stock_kernel.exceptions import StockKernelError

LOGGER_NAMESPACE = "stock_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "operation",
    "organization_id",
    "variant_id",
    "lot_number",
    "reference",
    "actor_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"stock_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context_vars[name]
    except KeyError:
        raise ValueError(f"Unknown log context field: {name}") from None


class LogContext:
    """Request-scoped fields attached to every stock_kernel record."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set fields for the rest of the current context; None is ignored."""
        for name, value in fields.items():
            if value is not None:
                _context_var(name).set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        fields: dict[str, str] = {}
        for name, var in _context_vars.items():
            value = var.get()
            if value is not None:
                fields[name] = value
        return fields

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Set fields for the duration of the block and restore them after.

        None values leave the current binding alone, so optional request
        attributes can be passed straight through.
        """
        tokens = []
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                tokens.append((var, var.set(value)))
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else on a record came from extra=.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, StockKernelError):
        fields["exc_code"] = exc.code
        for key, value in vars(exc).items():
            if not key.startswith("_"):
                fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the stock_kernel namespace, e.g. ``services.adjustment``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_lock = threading.Lock()


def _structured_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h.formatter, StructuredFormatter)]


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach one structured handler to the ``stock_kernel`` logger.

    Idempotent: once a structured handler is attached, later calls change
    nothing.  Handlers installed by other tooling are left in place.
    Records do not propagate to the root logger.
    """
    logger = logging.getLogger(LOGGER_NAMESPACE)
    with _lock:
        if _structured_handlers(logger):
            return logger
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        logger.setLevel(level)
        logger.propagate = False
        logger.addHandler(target)
    return logger


def reset_logging() -> None:
    """Detach the structured handlers and restore logger defaults. Tests only."""
    logger = logging.getLogger(LOGGER_NAMESPACE)
    with _lock:
        for h in _structured_handlers(logger):
            logger.removeHandler(h)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
