"""
Observability module: structured JSON logging.
"""

from sessionstate.observability.logging import (
    JsonFormatter,
    LogLevel,
    StructuredLogger,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "StructuredLogger",
    "setup_logging",
]
