"""
Structured JSON logging for the lending kernel.

Every record leaves as one JSON line carrying the operator request context
(correlation id, operator, operation and the investment, financing or
installment being acted on).  Money in ``extra`` stays a Decimal until it is
rendered, and is rendered as a string.
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
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping

_LOGGER_PREFIX = "lending_kernel"

_EMPTY: Mapping[str, str] = MappingProxyType({})

# Request-scoped fields; replaced wholesale, never mutated in place
_request_fields: ContextVar[Mapping[str, str]] = ContextVar(
    "lending_request_fields", default=_EMPTY
)


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


class LogContext:
    """
    Request-scoped fields stamped on every log line.

    Backed by a single ContextVar, so concurrent operator requests in threads
    or tasks never see each other's ids.
    """

    FIELDS = frozenset(
        {
            "correlation_id",
            "actor_id",
            "operation",
            "investment_id",
            "financing_id",
            "installment_id",
        }
    )

    @classmethod
    def _merged(cls, fields: Mapping[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - cls.FIELDS
        if unknown:
            raise KeyError(f"Unknown log context field(s): {sorted(unknown)}")
        current = dict(_request_fields.get())
        current.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Add fields to the current context; None values are ignored."""
        _request_fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_request_fields.get())

    @classmethod
    def clear(cls) -> None:
        _request_fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the previous context."""
        token = _request_fields.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _request_fields.reset(token)


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _render(obj: Any) -> str:
    """json.dumps fallback: dates as ISO 8601, Decimal and UUID via str()."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    to_dict = getattr(exc, "to_dict", None)
    if callable(to_dict):
        # LendingKernelError: code, kind and the figures behind the refusal
        rendered = to_dict()
        fields["exc_code"] = rendered["code"]
        fields["exc_kind"] = rendered["kind"]
        for key, value in rendered["detail"].items():
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_render)


def get_logger(name: str) -> logging.Logger:
    """Logger under the lending_kernel namespace, e.g. get_logger("services.credit")."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the lending_kernel logger.

    Only the first call has an effect.  ``level`` accepts a logging constant
    or its name ("DEBUG", "info").
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level.upper() if isinstance(level, str) else level)
    kernel_logger.propagate = False

    sink = handler or logging.StreamHandler(stream or sys.stderr)
    sink.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(sink)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging to run again. Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
