"""
Write-Lock Acquisition: Exponential Backoff with Jitter

Contention is an ordinary protocol outcome, so the cache connection reports
it and leaves the waiting policy to the caller. This module is that policy:
- Exponential backoff: 50ms x 2^n, capped
- Full jitter: random(0, backoff) to prevent thundering herd
- Overall deadline on top of the attempt budget

Store errors are never retried here; they are returned on first sight.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sessionstate.core import constants as C
from sessionstate.core.errors import LockError, SessionStateError
from sessionstate.core.types import Err, Ok, Result
from sessionstate.session.connection import CacheConnection, LockSnapshot

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Polling configuration."""

    max_attempts: int = C.LOCK_POLL_MAX_ATTEMPTS
    base_delay_ms: int = C.LOCK_POLL_BASE_MS
    max_delay_ms: int = C.LOCK_POLL_MAX_MS
    exponential_base: float = 2.0
    jitter: bool = True  # Full jitter
    deadline_s: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0 or self.max_delay_ms < self.base_delay_ms:
            raise ValueError("delays must satisfy 0 <= base_delay_ms <= max_delay_ms")

    @classmethod
    def default(cls) -> RetryPolicy:
        """Default polling policy."""
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt; report contention immediately."""
        return cls(max_attempts=1)

    @classmethod
    def aggressive(cls) -> RetryPolicy:
        """Frequent polling for latency-sensitive callers."""
        return cls(
            max_attempts=20,
            base_delay_ms=10,
            max_delay_ms=500,
        )


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay in milliseconds with optional jitter.

    Full jitter: random(0, min(cap, base * 2^attempt))
    """
    # Exponential delay
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    # Full jitter
    if jitter:
        delay = random.uniform(0, delay)

    return delay


async def acquire_write_lock(
    connection: CacheConnection,
    lock_timeout: int,
    policy: Optional[RetryPolicy] = None,
    session_id: str = "",
) -> Result[LockSnapshot, SessionStateError]:
    """
    Poll try_take_write_lock_and_get_data until the lock is acquired.

    Each attempt uses the current time as lock time, so a holder that
    stops releasing becomes stale after ``lock_timeout`` and is taken over
    by a later attempt.

    Args:
        connection: Cache connection for the session
        lock_timeout: Lock lifetime in seconds
        policy: Polling configuration (default if None)
        session_id: Used in the contention error; defaults to the
            connection's own session id when it has one

    Returns:
        Ok(ACQUIRED snapshot), Err(LockError) once attempts or the
        deadline run out, or the first Err(StoreError) unchanged.
    """
    if policy is None:
        policy = RetryPolicy.default()
    session_id = session_id or getattr(connection, "session_id", "")

    deadline = time.monotonic() + policy.deadline_s
    last: Optional[LockSnapshot] = None
    attempts = 0

    for attempt in range(policy.max_attempts):
        attempts += 1
        result = await connection.try_take_write_lock_and_get_data(
            datetime.now(timezone.utc), lock_timeout,
        )
        if result.is_err():
            return result

        snapshot = result.value
        if snapshot.acquired:
            if attempt:
                logger.debug(
                    "Write lock acquired after polling",
                    extra={"session_id": session_id, "attempts": attempts},
                )
            return Ok(snapshot)
        last = snapshot

        if attempt + 1 >= policy.max_attempts:
            break

        delay = calculate_backoff(
            attempt=attempt,
            base_delay_ms=policy.base_delay_ms,
            max_delay_ms=policy.max_delay_ms,
            exponential_base=policy.exponential_base,
            jitter=policy.jitter,
        )
        remaining_s = deadline - time.monotonic()
        if remaining_s <= 0:
            break
        await asyncio.sleep(min(delay / 1000, remaining_s))

    holder = str(last.lock_id) if last is not None and last.lock_id is not None else None
    logger.info(
        "Write lock still contended, giving up",
        extra={"session_id": session_id, "attempts": attempts, "holder": holder},
    )
    return Err(LockError.contended(session_id, attempts, holder))


__all__ = ["RetryPolicy", "calculate_backoff", "acquire_write_lock"]
