"""
Core Type Definitions for Session State Locking

Implements Result/Either monads for zero-exception control flow.
Lock contention and identifier mismatches are ordinary outcomes of the
locking protocol, so they travel as values, never as exceptions.

Design Principles:
- Never use null for absence (use Optional or Result)
- Enforce exhaustive pattern matching for all variants
- Identifiers are immutable, hashable and round-trip through their wire form

Complexity: O(1) for all type operations
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)
from uuid import uuid4

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable, hashable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        """O(1) success check."""
        return True

    def is_err(self) -> Literal[False]:
        """O(1) error check."""
        return False

    def unwrap(self) -> T:
        """
        Extract value. Safe to call after is_ok() check.

        Returns:
            T: The wrapped success value
        """
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Immutable container for error information.
    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH MICROSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Wall-clock timestamp stored as microseconds since the Unix epoch.

    Microseconds are the finest unit a ``datetime`` carries, and the value
    stays below 2**53 so Lua scripts can compare it as a plain number.
    """

    micros: int

    MICROS_PER_SECOND: ClassVar[int] = 1_000_000

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current wall-clock time."""
        return cls(micros=time.time_ns() // 1_000)

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """
        Convert a timezone-aware datetime.

        Raises:
            ValueError: If ``value`` is naive.
        """
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("datetime must be timezone-aware")
        return cls(micros=(value - EPOCH) // timedelta(microseconds=1))

    @property
    def seconds(self) -> float:
        """Convert to floating-point seconds."""
        return self.micros / self.MICROS_PER_SECOND

    def to_datetime(self) -> datetime:
        """Convert to a UTC datetime."""
        return EPOCH + timedelta(microseconds=self.micros)

    def elapsed(self) -> timedelta:
        """Wall-clock time elapsed since this timestamp."""
        return timedelta(microseconds=Timestamp.now().micros - self.micros)

    def __sub__(self, other: Timestamp) -> timedelta:
        return timedelta(microseconds=self.micros - other.micros)

    def __repr__(self) -> str:
        return f"Timestamp({self.micros}us)"


# =============================================================================
# LOCK IDENTIFIER
# =============================================================================
@dataclass(frozen=True, slots=True)
class LockId:
    """
    Write-lock identifier: proof of ownership for one acquisition.

    Wire form is ``"<acquired_at_micros>:<token>"``. The acquired-at part lets
    any process compute the lock's age; the random token makes every
    acquisition unique even when two callers share a clock tick.
    """

    acquired_at: Timestamp
    token: str

    SEPARATOR: ClassVar[str] = ":"

    @classmethod
    def generate(cls, acquired_at: Optional[Timestamp] = None) -> LockId:
        """Generate a fresh identifier for an acquisition at ``acquired_at``."""
        return cls(acquired_at=acquired_at or Timestamp.now(), token=uuid4().hex)

    @classmethod
    def from_string(cls, raw: Union[str, bytes]) -> Result[LockId, str]:
        """
        Parse the wire form.

        Returns:
            Ok[LockId]: Valid parsed identifier
            Err[str]: Validation error message
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("ascii")
            except UnicodeDecodeError:
                return Err("Lock id is not ASCII")
        micros, sep, token = raw.partition(cls.SEPARATOR)
        if not sep or not micros.isdigit() or not token:
            return Err(f"Invalid lock id format: {raw!r}")
        return Ok(cls(acquired_at=Timestamp(micros=int(micros)), token=token))

    def __str__(self) -> str:
        return f"{self.acquired_at.micros}{self.SEPARATOR}{self.token}"
