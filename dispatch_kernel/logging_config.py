"""
Structured JSON logging for the dispatch kernel.

Every record leaves the ``dispatch_kernel`` logger tree as one JSON line.
The line carries the record's ``extra`` fields and the request-scoped
dispatch context (correlation, actor, entity and batch ids).  Kernel errors
attached through ``exc_info`` also contribute their code, category and
structured attributes.

    configure_logging()
    log = get_logger("services.dispatch_guide")
    with LogContext.bind(correlation_id="...", actor_id="7"):
        log.info("guide_updated", extra={"guide_id": 11})
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
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from dispatch_kernel.exceptions import DispatchKernelError

_ROOT_LOGGER = "dispatch_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "entity_id",
    "batch_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("dispatch_log_context", default={})


def _merged(fields: Mapping[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update({name: value for name, value in fields.items() if value is not None})
    return merged


class LogContext:
    """Request-scoped dispatch fields stamped onto every log line."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Overwrite the given fields for the rest of the current context."""
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block.

        ``None`` values are skipped, so optional ids can be passed straight
        through.  On exit the previous mapping is restored as a whole.
        """
        token = _context.set(_merged(fields))
        try:
            yield LogContext
        finally:
            _context.reset(token)


_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset, tuple)):
            return sorted(obj, key=str)
        return str(obj)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, DispatchKernelError):
        fields["exc_code"] = exc.code
        fields["exc_category"] = exc.category
        # Ids, states and field names the error was raised with
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_error_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, cls=_JSONEncoder)


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.counter")``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()


def _is_configured(logger: logging.Logger) -> bool:
    return any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers)


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the kernel logger tree.

    Only the first call has an effect; later calls keep the handler and
    level already in place until ``reset_logging`` runs.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    with _setup_lock:
        if _is_configured(logger):
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        logger.addHandler(target)
        logger.setLevel(level)
        logger.propagate = False


def reset_logging() -> None:
    """Detach every kernel handler. Used by the test suite."""
    logger = logging.getLogger(_ROOT_LOGGER)
    with _setup_lock:
        logger.handlers.clear()
        logger.setLevel(logging.WARNING)
