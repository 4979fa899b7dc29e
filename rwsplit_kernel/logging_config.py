"""
Structured JSON logging for the rwsplit kernel.

Every line is one JSON object: a fixed envelope (``ts``, ``level``,
``logger``, ``message``), then the ambient request fields held in
``LogContext``, then the record's ``extra`` fields, then the exception
fields when ``exc_info`` is set.

Accessor and factory lines describe the store they touched through
``store_fields()``: ``role`` (primary / replica), ``txn_state`` and, when the
handle carries any, ``session_info``.

Invariants:
    - configure_logging() attaches at most one JSON handler to the
      ``rwsplit_kernel`` logger, however often it is called.
    - Envelope keys are never overwritten by context or extra fields.
"""

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "store_fields",
]

import json
import logging
import sys
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import IO, Any
from uuid import UUID

_LOGGER_PREFIX = "rwsplit_kernel"
_HANDLER_NAME = "rwsplit_kernel.json"

_context: ContextVar[Mapping[str, Any]] = ContextVar("rwsplit_log_context", default={})


class LogContext:
    """
    Request-scoped fields added to every log line.

    Backed by a single ContextVar, so each thread and each asyncio task sees
    its own fields.  The same fields are what ``bind_log_context`` copies into
    a handle's session info.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge ``fields`` into the current context.  ``None`` removes a key."""
        merged = dict(_context.get())
        for key, value in fields.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        _context.set(merged)

    @staticmethod
    def get_all() -> dict[str, Any]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})


def store_fields(
    role: str,
    txn_state: Enum | str,
    session_info: Mapping[str, Any] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """``extra`` for a log line about one store handle."""
    extra: dict[str, Any] = {
        "role": role,
        "txn_state": txn_state.value if isinstance(txn_state, Enum) else txn_state,
    }
    if session_info:
        extra["session_info"] = dict(session_info)
    extra.update(fields)
    return extra


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return repr(value)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # RwsplitKernelError subclasses keep their context as public attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for source in (LogContext.get_all(), _extra_fields(record)):
            for key, value in source.items():
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``rwsplit_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Send ``rwsplit_kernel`` logs through a JSON handler.

    Writes to ``stream`` (stderr by default) unless an explicit ``handler``
    is given.  A second call is a no-op until reset_logging().
    """
    root = logging.getLogger(_LOGGER_PREFIX)
    if any(h.name == _HANDLER_NAME for h in root.handlers):
        return

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.set_name(_HANDLER_NAME)
    target.setFormatter(StructuredFormatter())

    root.setLevel(level)
    root.propagate = False
    root.addHandler(target)


def reset_logging() -> None:
    """Detach every handler from the ``rwsplit_kernel`` logger."""
    root = logging.getLogger(_LOGGER_PREFIX)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(logging.WARNING)
    root.propagate = True
