"""
Structured Logging: JSON-Formatted with Session Context

Provides:
- JSON-formatted log output
- Request-scoped fields (session id, lock id) via context variables
- Payload redaction: bytes fields are logged as their size

Library modules only emit records; handlers are installed by the host
application through setup_logging().
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional, TextIO


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Parse a level name such as ``"info"``; raises KeyError if unknown."""
        return cls[name.strip().upper()]


# Context variable for request-scoped fields
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every logging.LogRecord carries; anything else came from `extra`
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
})


def _render(value: Any) -> Any:
    """Session payloads are opaque and may be sensitive; log their size only."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    return value


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fixed keys: ``@timestamp``, ``level``, ``message``, ``logger``. Context
    fields come first, then record extras, so a call-site field wins over
    a scoped one.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        for key, value in _log_context.get().items():
            data[key] = _render(value)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                data[key] = _render(value)

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class StructuredLogger:
    """
    Structured logger with context propagation.

    Usage:
        logger = StructuredLogger("sessionstate.session")

        with logger.context(session_id="abc"):
            logger.info("Lock acquired", lock_id=str(lock_id))
    """

    __slots__ = ("_logger", "_default_extra")

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._default_extra: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, **kwargs)

    def _log(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level.value):
            return
        extra = {**self._default_extra, **kwargs}
        self._logger.log(level.value, message, extra=extra)

    def with_extra(self, **kwargs: Any) -> StructuredLogger:
        """Create child logger with additional default fields."""
        new_logger = StructuredLogger(self._logger.name)
        new_logger._default_extra = {**self._default_extra, **kwargs}
        return new_logger

    @staticmethod
    def context(**kwargs: Any) -> _LogContext:
        """Context manager for request-scoped fields."""
        return _LogContext(kwargs)


class _LogContext:
    """Context manager for adding fields to all logs."""

    __slots__ = ("_fields", "_token")

    def __init__(self, fields: dict[str, Any]) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> _LogContext:
        new_context = {**_log_context.get(), **self._fields}
        self._token = _log_context.set(new_context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure root logger for structured logging.

    Args:
        level: Minimum log level
        json_output: Use JSON formatting
        stream: Output stream (default: stderr)
    """
    root = logging.getLogger()
    root.setLevel(level.value)

    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level.value)

    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        ))

    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
