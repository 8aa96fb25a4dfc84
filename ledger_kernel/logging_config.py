"""
Module: ledger_kernel.logging_config
Responsibility: One JSON object per log line for every ledger_kernel logger,
    with the current posting context (correlation id, actor, entry number,
    store) merged into each line.
Architecture position: Kernel root.  Imported by services, selectors,
    ledger_config and db; imports nothing from the kernel itself.

Invariants enforced:
    - Everything logs under the ``ledger_kernel`` namespace and never
      propagates to the root logger once configured.
    - configure_logging() installs its handler at most once per process
      until reset_logging() is called.
    - Attributes of a logged exception appear as ``exc_<name>`` keys, its
      machine-readable code as ``exc_code``.
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

_NAMESPACE = "ledger_kernel"

# ---------------------------------------------------------------------------
# Posting context
# ---------------------------------------------------------------------------


class LogContext:
    """
    Per-task posting context copied onto every structured log line.

    Backed by ContextVars, so threads and asyncio tasks each see their own
    values.  Unset fields are left out of the output.
    """

    _correlation_id: ContextVar[str | None] = ContextVar("ledger_correlation_id", default=None)
    _actor_id: ContextVar[str | None] = ContextVar("ledger_actor_id", default=None)
    _entry_number: ContextVar[str | None] = ContextVar("ledger_entry_number", default=None)
    _store_id: ContextVar[str | None] = ContextVar("ledger_store_id", default=None)

    FIELDS = ("correlation_id", "actor_id", "entry_number", "store_id")

    @classmethod
    def _var(cls, field: str) -> ContextVar[str | None] | None:
        if field not in cls.FIELDS:
            return None
        return getattr(cls, f"_{field}")

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        entry_number: str | None = None,
        store_id: str | None = None,
    ) -> None:
        """Overwrite the given fields; None leaves a field as it is."""
        values = {
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "entry_number": entry_number,
            "store_id": store_id,
        }
        for field, value in values.items():
            if value is not None:
                cls._var(field).set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            field: value
            for field in cls.FIELDS
            if (value := cls._var(field).get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for field in cls.FIELDS:
            cls._var(field).set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """
        Scope fields to a ``with`` block.

        Values are stringified; unknown field names are ignored.  The
        previous values come back when the block exits, even on error.
        """
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for field, value in self._fields.items():
            var = LogContext._var(field)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """
    Render a record as compact JSON.

    Key order: ts, level, logger, message, then context fields, then the
    record's extra= fields, then exception details.  An extra= key never
    overwrites a base or context key.
    """

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                line.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.journal_engine")`` -> ledger_kernel.services.journal_engine"""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_handler_installed = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ledger_kernel logger.

    Later calls are ignored until reset_logging().  ``handler`` wins over
    ``stream``; with neither, output goes to stderr.
    """
    global _handler_installed
    with _setup_lock:
        if _handler_installed:
            return
        _handler_installed = True

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.setLevel(level)
    namespace_logger.propagate = False
    namespace_logger.addHandler(target)


def reset_logging() -> None:
    """Drop the installed handler so configure_logging() runs again (tests)."""
    global _handler_installed
    with _setup_lock:
        _handler_installed = False
    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.handlers.clear()
    namespace_logger.setLevel(logging.WARNING)
