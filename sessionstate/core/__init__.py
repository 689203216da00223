"""
Core module: Type definitions, error hierarchy, and configuration.

- Result/Either monads for zero-exception control flow
- Lock identifiers carrying their acquisition timestamp
- Exhaustive error hierarchy with pattern matching support
"""

from sessionstate.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    LockId,
)
from sessionstate.core.errors import (
    ErrorCode,
    SessionStateError,
    StoreError,
    ValidationError,
    LockError,
    ConfigurationError,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "LockId",
    "ErrorCode",
    "SessionStateError",
    "StoreError",
    "ValidationError",
    "LockError",
    "ConfigurationError",
]
