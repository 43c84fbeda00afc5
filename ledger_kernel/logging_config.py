"""
Structured JSON logging for the ledger.

Every service logs through ``get_logger(name)``, which hangs the logger under
the ``ledger_kernel`` root.  ``configure_logging()`` attaches one handler that
renders each record as a single JSON line:

    {"ts": ..., "level": "INFO", "logger": "ledger_kernel.recurring.due_processor",
     "message": "recurring_occurrence_posted", "rule_id": ..., "posting_ids": [...]}

Request-scoped identifiers (correlation, owner, rule, trigger) live in
``LogContext`` and are merged into every line emitted while they are bound.
Fields passed via ``extra=`` are copied as-is.  Ledger exceptions logged with
``exc_info`` contribute their ``code`` and public attributes as ``exc_*``.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER_NAME = "ledger_kernel"

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"ledger_log_{field}", default=None)
    for field in ("correlation_id", "owner_id", "rule_id", "trigger_id")
}


class LogContext:
    """Context-local identifiers stamped onto every log line.

    Backed by ``ContextVar`` so values stay isolated per thread and per
    asyncio task.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields; None values leave a field untouched."""
        for name, value in fields.items():
            if value is not None:
                _CONTEXT_VARS[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: var.get()
            for name, var in _CONTEXT_VARS.items()
            if var.get() is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Bind fields for the duration of a ``with`` block, then restore."""
        tokens = [
            (_CONTEXT_VARS[name], _CONTEXT_VARS[name].set(value))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record))

        return json.dumps(line, default=_json_default)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """``get_logger("recurring.trigger")`` -> ``ledger_kernel.recurring.trigger``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_setup_done = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the ledger root logger.

    Only the first call has an effect until ``reset_logging()`` runs.
    Without ``handler`` a stream handler on ``stream`` (default stderr) is
    used.
    """
    global _setup_done
    with _setup_lock:
        if _setup_done:
            return
        _setup_done = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging()`` again. Test helper."""
    global _setup_done
    with _setup_lock:
        _setup_done = False
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
