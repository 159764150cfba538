"""
Structured JSON logging for the ledger kernel and its modules.

Every record is one JSON object per line.  Module services bind the
operation and target entity into ``LogContext`` for the length of a unit
of work, so kernel and engine records written underneath carry them
without threading the values through every call.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "operation",
    "entity_type",
    "entity_id",
    "trace_id",
)

_context: ContextVar[dict[str, str]] = ContextVar("ledger_log_context", default={})


class LogContext:
    """
    Operation-scoped log fields, safe across threads and asyncio tasks.

    The whole field set lives in one ContextVar holding an immutable
    snapshot; every change installs a new dict.
    """

    FIELDS = _CONTEXT_FIELDS

    @staticmethod
    def _clean(values: dict[str, Any]) -> dict[str, str]:
        unknown = set(values) - set(_CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {', '.join(sorted(unknown))}")
        return {k: str(v) for k, v in values.items() if v is not None}

    @classmethod
    def set(cls, **values: Any) -> None:
        """Merge fields into the current context.  None values are ignored."""
        _context.set({**_context.get(), **cls._clean(values)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **values: Any) -> "_BoundContext":
        """
        Context manager: merge fields on entry, restore the previous
        snapshot on exit.

        Usage::

            with LogContext.bind(operation="post", entity_id=tx.id):
                ...
        """
        return _BoundContext(cls._clean(values))


class _BoundContext:
    def __init__(self, values: dict[str, str]):
        self._values = values
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set({**_context.get(), **self._values})
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """exc_type / exc_message plus the structured attributes of typed errors."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, val in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = val
    return fields


class StructuredFormatter(logging.Formatter):
    """
    Formats each record as a single JSON line.

    Precedence for colliding keys: core fields, then LogContext, then the
    record's ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, val)
            for key, val in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

ROOT_LOGGER_NAME = "ledger_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the ledger_kernel namespace (``services.ledger`` etc.)."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ledger_kernel logger.

    Idempotent: only the first call in a process has any effect until
    ``reset_logging`` is called.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)


def reset_logging() -> None:
    """Drop handlers and allow reconfiguration.  For tests."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
