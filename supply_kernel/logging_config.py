"""
Structured JSON logging for the supply kernel.

Every record under the ``supply_kernel`` logger leaves as one JSON line:
a fixed envelope (ts, level, logger, message), the request-scoped fields
bound through LogContext, and whatever the call site passed in ``extra``.

The gateway binds ``correlation_id``, ``actor_id``, ``request_id`` and
``action`` around each operation, so every ledger and workflow event of
one unit of work can be grouped after the fact.

Kernel errors are flattened into ``exc_*`` fields (``exc_code``,
``exc_item_id``, ``exc_requested`` ...).  They are expected outcomes, so
only exceptions from outside the kernel carry a traceback.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LOG_LEVEL_ENV",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "installed_handlers",
    "reset_logging",
]

import json
import logging
import os
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

from supply_kernel.exceptions import SupplyKernelError

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "request_id",
    "actor_id",
    "item_id",
    "action",
)

# Never mutated in place; every change installs a new dict.
_context: ContextVar[dict[str, str]] = ContextVar("supply_log_context", default={})


def _context_values(fields: dict[str, object]) -> dict[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise ValueError(f"Unknown log context field(s): {', '.join(unknown)}")
    return {name: str(value) for name, value in fields.items() if value is not None}


class LogContext:
    """
    Request-scoped fields merged into every structured record.

    Backed by a ContextVar, so each thread (and each asyncio task) sees
    only what it bound itself.  None values are skipped and everything
    else is stored as ``str``.
    """

    @classmethod
    def set(cls, **fields: object) -> None:
        """Merge ``fields`` into the current context until cleared."""
        _context.set({**_context.get(), **_context_values(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: object) -> Iterator[dict[str, str]]:
        """Bind ``fields`` for the duration of the block; the outer context is restored on exit."""
        token = _context.set({**_context.get(), **_context_values(fields)})
        try:
            yield dict(_context.get())
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Encode the domain values that show up in log extras."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, SupplyKernelError):
        fields["exc_code"] = exc.code
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    if exc.__cause__ is not None:
        fields["exc_cause"] = f"{type(exc.__cause__).__name__}: {exc.__cause__}"
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        # Context wins over a same-named extra.
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload.update(_exception_fields(exc))
            if not isinstance(exc, SupplyKernelError):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "supply_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the supply_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

LOG_LEVEL_ENV = "SUPPLY_LOG_LEVEL"

_installed: list[logging.Handler] = []
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str | None = None,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the structured handler on the supply_kernel logger.

    Idempotent: once a handler is installed, later calls return it and
    change nothing.  ``level`` falls back to $SUPPLY_LOG_LEVEL, then INFO.
    """
    with _lock:
        if _installed:
            return _installed[0]

        if level is None:
            level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()

        root_logger = logging.getLogger(_LOGGER_PREFIX)
        root_logger.setLevel(level)
        root_logger.propagate = False

        h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        h.setFormatter(StructuredFormatter())
        root_logger.addHandler(h)
        _installed.append(h)
        return h


def installed_handlers() -> tuple[logging.Handler, ...]:
    """Handlers added by configure_logging (not by tests or the host application)."""
    with _lock:
        return tuple(_installed)


def reset_logging() -> None:
    """Remove what configure_logging installed. FOR TESTING ONLY."""
    with _lock:
        root_logger = logging.getLogger(_LOGGER_PREFIX)
        for h in _installed:
            root_logger.removeHandler(h)
        _installed.clear()
        root_logger.setLevel(logging.NOTSET)
        root_logger.propagate = True
