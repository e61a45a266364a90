"""
Structured JSON logging for the travel kernel.

Every record is one JSON line.  Request-scoped fields (correlation id,
acting user, entity and approval under work, caller channel) come from
``LogContext`` and are merged into each line without being passed at the
call site.

Phone numbers never reach the log: any field whose name mentions a phone
is masked down to its last two digits before serialization.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
    "mask_phone",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"travel_log_{name}", default=None)
    for name in ("correlation_id", "actor_id", "entity_id", "approval_id", "channel")
}


class LogContext:
    """Context-local fields merged into every log line (thread and task safe)."""

    FIELDS = tuple(_CONTEXT_VARS)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; None values and unknown names are ignored."""
        for name, val in fields.items():
            var = _CONTEXT_VARS.get(name)
            if var is not None and val is not None:
                var.set(str(val))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Non-None context fields."""
        return {
            name: val
            for name, var in _CONTEXT_VARS.items()
            if (val := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore them.

        Usage::

            with LogContext.bind(approval_id=approval.id, channel="phone"):
                ...
        """
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, val in self._fields.items():
            var = _CONTEXT_VARS.get(name)
            if var is not None and val is not None:
                self._tokens.append((var, var.set(str(val))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------


def mask_phone(value: Any) -> str:
    """``"+62 811-2222"`` -> ``"***22"``."""
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return "***" + digits[-2:] if digits else "***"


def _redact(key: str, val: Any) -> Any:
    if val is not None and "phone" in key.lower():
        return mask_phone(val)
    return val


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """UUIDs, dates, Decimals and enums as JSON scalars."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        # Extras never overwrite the envelope or bound context fields
        for key, val in vars(record).items():
            if key in _STDLIB_KEYS:
                continue
            payload[f"extra_{key}" if key in payload else key] = _redact(key, val)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))

        return json.dumps(payload, cls=_JSONEncoder, default=str)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Attributes of TravelKernelError subclasses (status, level, role, ...)
        for key, val in vars(exc).items():
            if not key.startswith("_") and key != "code":
                fields[f"exc_{key}"] = _redact(key, val)
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "travel_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the travel_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the travel_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
