"""
Error Hierarchy for Session State Locking

Design Principles:
- Forbid exceptions for control flow (use Result types)
- Expected lock-protocol outcomes (contention, superseded identifiers)
  are values, not errors
- Never swallow errors or use null for absence
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation across processes

Usage:
    result = await connection.set(payload, timeout=1200)
    match result:
        case Ok(_):
            ...
        case Err(StoreError() as error) if error.code is ErrorCode.STORE_TIMEOUT:
            handle_timeout(error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sessionstate.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Remote store errors
    - 2xxx: Input validation errors
    - 3xxx: Lock acquisition errors
    - 9xxx: Internal/configuration errors
    """

    # Store errors (1xxx)
    STORE_CONNECTION_FAILED = 1001
    STORE_TIMEOUT = 1002
    STORE_COMMAND_FAILED = 1003
    STORE_NOT_CONNECTED = 1004
    STORE_UNEXPECTED_REPLY = 1005
    STORE_WRONG_EVENT_LOOP = 1006

    # Validation errors (2xxx)
    VALIDATION_INVALID_FIELD = 2001

    # Lock errors (3xxx)
    LOCK_CONTENDED = 3001

    # Internal errors (9xxx)
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionStateError(Exception):
    """
    Base class for all session state errors.

    Provides common infrastructure for error handling:
    - Unique error ID for cross-process correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> SessionStateError:
        """Add context to error (returns new instance of the same class)."""
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for structured logs.

        The cause is reduced to its repr; stack traces stay out of log fields.
        """
        data: dict[str, Any] = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_micros": self.timestamp.micros,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# STORE ERRORS (REMOTE REDIS)
# =============================================================================
@dataclass
class StoreError(SessionStateError):
    """
    Failures talking to the remote store.

    Covers connection setup, timeouts, rejected commands and replies that do
    not have the shape a script promises. Never retried silently.
    """

    @classmethod
    def connection_failed(
        cls,
        host: str,
        port: int,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        """Could not connect to the store."""
        return cls(
            code=ErrorCode.STORE_CONNECTION_FAILED,
            message=f"Failed to connect to store at {host}:{port}",
            cause=cause,
            context={"host": host, "port": port},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        """Store operation timed out."""
        return cls(
            code=ErrorCode.STORE_TIMEOUT,
            message=f"Store operation '{operation}' timed out",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def command_failed(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        """Store rejected the command or the transport broke mid-flight."""
        return cls(
            code=ErrorCode.STORE_COMMAND_FAILED,
            message=f"Store operation '{operation}' failed: {cause}",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def not_connected(cls) -> StoreError:
        """Operation attempted on a connection that is not open."""
        return cls(
            code=ErrorCode.STORE_NOT_CONNECTED,
            message="Store connection is not open",
        )

    @classmethod
    def unexpected_reply(cls, operation: str, reply: Any) -> StoreError:
        """Reply did not match the expected shape."""
        return cls(
            code=ErrorCode.STORE_UNEXPECTED_REPLY,
            message=f"Unexpected reply from store for '{operation}'",
            context={"operation": operation, "reply": repr(reply)[:200]},
        )

    @classmethod
    def wrong_event_loop(cls) -> StoreError:
        """Holder used from an event loop other than the one that owns it."""
        return cls(
            code=ErrorCode.STORE_WRONG_EVENT_LOOP,
            message="Shared connection is bound to another event loop",
        )


# =============================================================================
# VALIDATION ERRORS (CALLER INPUT)
# =============================================================================
@dataclass
class ValidationError(SessionStateError):
    """Malformed caller input. Raised, never returned."""

    @classmethod
    def invalid_field(
        cls,
        field: str,
        value: Any,
        reason: str,
    ) -> ValidationError:
        """Input validation failed."""
        return cls(
            code=ErrorCode.VALIDATION_INVALID_FIELD,
            message=f"Invalid value for '{field}': {reason}",
            context={"field": field, "value": repr(value)[:100], "reason": reason},
        )


# =============================================================================
# LOCK ERRORS (CALLER-SIDE POLICY)
# =============================================================================
@dataclass
class LockError(SessionStateError):
    """
    Produced by caller-side acquisition policies once they give up.

    The protocol operations themselves report contention as a LOCKED
    snapshot; only a policy that polls turns it into an error.
    """

    @classmethod
    def contended(
        cls,
        session_id: str,
        attempts: int,
        holder: Optional[str],
    ) -> LockError:
        """Write lock still held by someone else after all attempts."""
        return cls(
            code=ErrorCode.LOCK_CONTENDED,
            message=(
                f"Write lock for session '{session_id}' still held "
                f"after {attempts} attempts"
            ),
            context={"session_id": session_id, "attempts": attempts, "holder": holder},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(SessionStateError):
    """Invalid or unloadable configuration."""

    @classmethod
    def invalid(
        cls,
        field: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Configuration error in '{field}': {reason}",
            cause=cause,
            context={"field": field, "reason": reason},
        )


__all__ = [
    "ErrorCode",
    "SessionStateError",
    "StoreError",
    "ValidationError",
    "LockError",
    "ConfigurationError",
]
