"""
Structured JSON logging for the pricing engine.

Responsibility:
    One JSON object per log record, with the session context (correlation,
    proposal, session, actor, wizard step) merged in from a context
    variable, so that every engine and service log line can be joined to
    the editing session that produced it.

Architecture position:
    Kernel -- imported by every layer; imports nothing from the project.

Usage:
    configure_logging(level=logging.DEBUG)
    logger = get_logger("engines.totals")      # -> "pricing.engines.totals"
    with LogContext.bind(proposal_id="prop-1", step_id="items"):
        logger.info("totals_calculation_completed", extra={"grand_total": "1280.00"})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import fields, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

_NAMESPACE = "pricing"

# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("pricing_log_context", default=_EMPTY)


class LogContext:
    """
    Session-scoped fields attached to every record.

    Values live in one immutable mapping held by a context variable; every
    update swaps the mapping, so concurrent tasks never see each other's
    fields.
    """

    FIELDS: tuple[str, ...] = (
        "correlation_id",
        "proposal_id",
        "session_id",
        "actor_id",
        "step_id",
    )

    @classmethod
    def _merged(cls, changes: Mapping[str, str | None]) -> Mapping[str, str]:
        unknown = set(changes) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        current = dict(_context.get())
        current.update({k: str(v) for k, v in changes.items() if v is not None})
        return MappingProxyType(current)

    @classmethod
    def set(cls, **changes: str | None) -> None:
        """Update fields; None leaves a field as it is."""
        _context.set(cls._merged(changes))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **changes: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the previous set."""
        token = _context.set(cls._merged(changes))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, Mapping):
        return dict(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in fields(value)}
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, ``code`` and public attributes of a raised exception."""
    result: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        result["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            result[f"exc_{name}"] = value
    return result


class StructuredFormatter(logging.Formatter):
    """
    Renders a record as one JSON line.

    Key order: ts, level, logger, message, context fields, extra fields,
    exception fields.  Extra keys never overwrite the base keys.
    """

    def __init__(self, *, include_traceback: bool = True):
        super().__init__()
        self.include_traceback = include_traceback

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key in ("ts", "level", "logger"):
                continue
            payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            if self.include_traceback:
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Loggers and setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``pricing`` namespace; an already-prefixed name is kept."""
    if name == _NAMESPACE or name.startswith(f"{_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``pricing`` logger.

    Only the first call has an effect until ``reset_logging()``.  Records do
    not propagate to the root logger.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.setLevel(level)
    namespace_logger.propagate = False
    namespace_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` again. Tests only."""
    global _configured
    with _setup_lock:
        _configured = False
    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.handlers.clear()
    namespace_logger.setLevel(logging.WARNING)
