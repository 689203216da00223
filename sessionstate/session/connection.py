"""
Cache Connection: Session Write-Lock and Record Lifecycle

Per-session state machine:
    Unlocked --take--> Locked(lock_id, acquired_at)
    Locked   --release / update / remove (matching id)--> Unlocked
    Locked   --take after lock_timeout (stale)--> Locked(new lock_id)

Algorithm:
    1. Identifier-gated operations run as one Lua script each, so comparing
       the stored lock id and acting on it is a single atomic step
    2. Unconditional multi-key writes (set, expiry refresh) and the
       read-only check run as MULTI/EXEC batches
    3. Stale takeover overwrites the lock key inside the same script that
       judged it stale; there is no clear-then-write window

Safety Guarantees:
    - At most one non-stale lock id per session
    - A superseded holder can never clobber the record or the new lock
    - Lock keys carry their own TTL, so a crashed holder's lock expires
      even if nobody ever tries to take it again

Outcomes:
    Contention and identifier mismatches are Ok values (LockStatus.LOCKED,
    LockOutcome.SUPERSEDED). Store failures are Err(StoreError). Malformed
    arguments raise ValidationError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Any, Optional

from sessionstate.core import constants as C
from sessionstate.core.config import SessionStateConfig
from sessionstate.core.errors import SessionStateError, StoreError, ValidationError
from sessionstate.core.types import Err, LockId, Ok, Result, Timestamp
from sessionstate.observability.logging import StructuredLogger
from sessionstate.session import scripts
from sessionstate.session.keys import KeyGenerator
from sessionstate.storage.shared import SharedConnection

logger = StructuredLogger(__name__)


# =============================================================================
# OUTCOME TYPES
# =============================================================================
class LockStatus(Enum):
    """What a take or check operation observed."""
    ACQUIRED = auto()   # Caller now holds the lock
    LOCKED = auto()     # Someone else holds a fresh lock
    UNLOCKED = auto()   # Nobody holds the lock (check only)


class LockOutcome(Enum):
    """Result of an identifier-gated operation."""
    APPLIED = auto()
    SUPERSEDED = auto()  # Stored id differs; nothing was changed

    @property
    def applied(self) -> bool:
        return self is LockOutcome.APPLIED


@dataclass(frozen=True, slots=True)
class LockSnapshot:
    """
    Lock state and record contents as seen by one atomic operation.

    Attributes:
        status: ACQUIRED, LOCKED or UNLOCKED
        lock_id: Caller's new id when ACQUIRED, the holder's id when LOCKED,
            None when UNLOCKED or when the stored id cannot be parsed
        data: Record payload; None when absent or withheld (LOCKED)
        timeout: Stored session timeout in seconds, None when absent
        superseded_lock_id: Stale id this acquisition took over, if any
    """
    status: LockStatus
    lock_id: Optional[LockId]
    data: Optional[bytes]
    timeout: Optional[int]
    superseded_lock_id: Optional[LockId] = None

    @property
    def acquired(self) -> bool:
        return self.status is LockStatus.ACQUIRED

    @property
    def locked(self) -> bool:
        """True when another caller holds the lock."""
        return self.status is LockStatus.LOCKED


@dataclass(slots=True)
class CacheMetrics:
    """Lock protocol counters for one cache connection."""
    locks_acquired: int = 0
    locks_contended: int = 0
    stale_takeovers: int = 0
    superseded_releases: int = 0
    store_errors: int = 0


# =============================================================================
# ABSTRACT INTERFACE
# =============================================================================
class CacheConnection(ABC):
    """
    Session record and write-lock operations for one session id.

    Every coroutine may suspend on a network round trip. Callers must not
    hold in-process locks across these calls.
    """

    @abstractmethod
    async def set(self, data: bytes, timeout: int) -> Result[None, SessionStateError]:
        """Write payload and timeout unconditionally; reset record TTL."""

    @abstractmethod
    async def update_expiry_time(self, timeout: int) -> Result[None, SessionStateError]:
        """Refresh record TTL without touching the payload."""

    @abstractmethod
    async def try_take_write_lock_and_get_data(
        self,
        lock_time: Optional[datetime],
        lock_timeout: int,
    ) -> Result[LockSnapshot, SessionStateError]:
        """Acquire the lock (or take over a stale one) and read the record."""

    @abstractmethod
    async def try_check_write_lock_and_get_data(self) -> Result[LockSnapshot, SessionStateError]:
        """Report lock state and record without mutating anything."""

    @abstractmethod
    async def try_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
        timeout: int,
    ) -> Result[LockOutcome, SessionStateError]:
        """Release on id match; refresh record TTL either way."""

    @abstractmethod
    async def try_remove_and_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
    ) -> Result[LockOutcome, SessionStateError]:
        """Delete record and lock on id match."""

    @abstractmethod
    async def try_update_and_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
        data: bytes,
        timeout: int,
    ) -> Result[LockOutcome, SessionStateError]:
        """Write payload, reset TTL and release on id match; no write otherwise."""

    @abstractmethod
    def get_lock_age(self, lock_id: LockId) -> timedelta:
        """Elapsed wall-clock time since ``lock_id`` was acquired."""


# =============================================================================
# ARGUMENT VALIDATION
# =============================================================================
def _require_timeout(field: str, value: Any) -> int:
    # bool is an int subclass but never a meaningful timeout
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError.invalid_field(field, value, "must be a positive integer (seconds)")
    return value


def _require_payload(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise ValidationError.invalid_field("data", type(value).__name__, "must be bytes")
    return bytes(value)


def _require_lock_id(value: Any) -> LockId:
    if not isinstance(value, LockId):
        raise ValidationError.invalid_field("lock_id", value, "must be a LockId")
    return value


def _parse_held(raw: Any) -> Optional[LockId]:
    """Stored lock id, or None if absent or unparsable."""
    if not raw:
        return None
    parsed = LockId.from_string(raw)
    if parsed.is_err():
        logger.warning("Unparsable lock id in store", lock_id=repr(raw), reason=parsed.error)
        return None
    return parsed.unwrap()


def _parse_timeout(operation: str, raw: Any) -> Result[Optional[int], StoreError]:
    """Stored session timeout; non-positive means none, non-numeric is a bad reply."""
    if raw is None:
        return Ok(None)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return Err(StoreError.unexpected_reply(operation, raw))
    return Ok(value if value > 0 else None)


# =============================================================================
# REDIS IMPLEMENTATION
# =============================================================================
class RedisCacheConnection(CacheConnection):
    """
    Cache connection backed by the shared Redis store connection.

    Usage:
        shared = shared_connection_for(config)
        cache = RedisCacheConnection(shared, session_id, config.application_name)

        taken = await cache.try_take_write_lock_and_get_data(None, 110)
        if taken.is_ok() and taken.value.acquired:
            snapshot = taken.value
            outcome = await cache.try_update_and_release_lock_if_lock_id_match(
                snapshot.lock_id, new_payload, 1200,
            )

    Raises (from every coroutine):
        StoreError: If the shared connection cannot be opened.
        ValidationError: On malformed arguments.
    """

    __slots__ = ("_shared", "keys", "_metrics", "_log")

    def __init__(
        self,
        shared: SharedConnection,
        session_id: str,
        application_name: str = C.DEFAULT_APPLICATION_NAME,
    ) -> None:
        self._shared = shared
        self.keys = KeyGenerator(session_id, application_name)
        self._metrics = CacheMetrics()
        self._log = logger.with_extra(session_id=session_id)

    @property
    def session_id(self) -> str:
        return self.keys.session_id

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    # -------------------------------------------------------------------------
    # UNCONDITIONAL RECORD OPERATIONS
    # -------------------------------------------------------------------------

    async def set(self, data: bytes, timeout: int) -> Result[None, SessionStateError]:
        payload = _require_payload(data)
        timeout = _require_timeout("timeout", timeout)
        keys = self.keys

        def build(pipe: Any) -> None:
            pipe.set(keys.data_key, payload, ex=timeout)
            pipe.hset(keys.internal_key, C.TIMEOUT_FIELD, timeout)
            pipe.expire(keys.internal_key, timeout)

        connection = await self._shared.try_get_connection()
        result = await connection.transaction("set", build)
        if result.is_err():
            return self._store_failed("set", result.error)
        return Ok(None)

    async def update_expiry_time(self, timeout: int) -> Result[None, SessionStateError]:
        timeout = _require_timeout("timeout", timeout)
        keys = self.keys

        def build(pipe: Any) -> None:
            pipe.expire(keys.data_key, timeout)
            pipe.expire(keys.internal_key, timeout)

        connection = await self._shared.try_get_connection()
        result = await connection.transaction("update_expiry_time", build)
        if result.is_err():
            return self._store_failed("update_expiry_time", result.error)
        return Ok(None)

    # -------------------------------------------------------------------------
    # LOCK ACQUISITION AND INSPECTION
    # -------------------------------------------------------------------------

    async def try_take_write_lock_and_get_data(
        self,
        lock_time: Optional[datetime],
        lock_timeout: int,
    ) -> Result[LockSnapshot, SessionStateError]:
        """
        Take the write lock if it is free or stale, and read the record.

        Args:
            lock_time: Acquisition time, timezone-aware. None means now.
                Also the reference point for judging the held lock's age.
            lock_timeout: Lock lifetime in seconds. A held lock whose age is
                at least this long is taken over.

        Returns:
            Ok(ACQUIRED snapshot) with the new lock id, payload and timeout,
            Ok(LOCKED snapshot) with the holder's id and no payload,
            Err(StoreError) on store failure.
        """
        lock_timeout = _require_timeout("lock_timeout", lock_timeout)
        if lock_time is None:
            acquired_at = Timestamp.now()
        elif not isinstance(lock_time, datetime) or lock_time.utcoffset() is None:
            raise ValidationError.invalid_field("lock_time", lock_time, "must be a timezone-aware datetime")
        else:
            acquired_at = Timestamp.from_datetime(lock_time)

        lock_id = LockId.generate(acquired_at)
        connection = await self._shared.try_get_connection()
        result = await connection.run_script(
            scripts.TAKE_WRITE_LOCK,
            self.keys.all(),
            (str(lock_id), acquired_at.micros, lock_timeout),
        )
        if result.is_err():
            return self._store_failed("try_take_write_lock_and_get_data", result.error)

        reply = result.value
        if not isinstance(reply, list) or len(reply) != 6:
            return self._store_failed(
                "try_take_write_lock_and_get_data",
                StoreError.unexpected_reply("try_take_write_lock_and_get_data", reply),
            )
        acquired, holder, has_data, data, raw_timeout, superseded = reply
        parsed = _parse_timeout("try_take_write_lock_and_get_data", raw_timeout)
        if parsed.is_err():
            return self._store_failed("try_take_write_lock_and_get_data", parsed.error)
        timeout = parsed.value

        if not int(acquired):
            self._metrics.locks_contended += 1
            held = _parse_held(holder)
            self._log.debug(
                "Write lock contended",
                holder=str(held) if held else None,
                holder_age_s=(acquired_at - held.acquired_at).total_seconds() if held else None,
            )
            return Ok(LockSnapshot(
                status=LockStatus.LOCKED,
                lock_id=held,
                data=None,
                timeout=timeout,
            ))

        self._metrics.locks_acquired += 1
        previous = _parse_held(superseded) if superseded else None
        if superseded:
            self._metrics.stale_takeovers += 1
            self._log.warning(
                "Stale write lock taken over",
                lock_id=str(lock_id),
                superseded_lock_id=str(previous) if previous else repr(superseded),
                lock_timeout_s=lock_timeout,
            )

        return Ok(LockSnapshot(
            status=LockStatus.ACQUIRED,
            lock_id=lock_id,
            data=bytes(data) if int(has_data) else None,
            timeout=timeout,
            superseded_lock_id=previous,
        ))

    async def try_check_write_lock_and_get_data(self) -> Result[LockSnapshot, SessionStateError]:
        """
        Read lock state and record in one MULTI/EXEC batch.

        Returns LOCKED with the holder's id (payload withheld), or UNLOCKED
        with payload and timeout. Nothing is written, TTLs included.
        """
        keys = self.keys

        def build(pipe: Any) -> None:
            pipe.get(keys.lock_key)
            pipe.get(keys.data_key)
            pipe.hget(keys.internal_key, C.TIMEOUT_FIELD)

        connection = await self._shared.try_get_connection()
        result = await connection.transaction("try_check_write_lock_and_get_data", build)
        if result.is_err():
            return self._store_failed("try_check_write_lock_and_get_data", result.error)

        holder, data, raw_timeout = result.value
        parsed = _parse_timeout("try_check_write_lock_and_get_data", raw_timeout)
        if parsed.is_err():
            return self._store_failed("try_check_write_lock_and_get_data", parsed.error)
        timeout = parsed.value
        if holder:
            return Ok(LockSnapshot(
                status=LockStatus.LOCKED,
                lock_id=_parse_held(holder),
                data=None,
                timeout=timeout,
            ))
        return Ok(LockSnapshot(
            status=LockStatus.UNLOCKED,
            lock_id=None,
            data=data,
            timeout=timeout,
        ))

    # -------------------------------------------------------------------------
    # IDENTIFIER-GATED OPERATIONS
    # -------------------------------------------------------------------------

    async def try_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
        timeout: int,
    ) -> Result[LockOutcome, SessionStateError]:
        """
        Release the lock if ``lock_id`` still owns it.

        The record TTL is refreshed to ``timeout`` whether or not the lock
        was released; a newer holder's lock is never touched.
        """
        lock_id = _require_lock_id(lock_id)
        timeout = _require_timeout("timeout", timeout)
        return await self._gated(
            "try_release_lock_if_lock_id_match",
            scripts.RELEASE_WRITE_LOCK,
            lock_id,
            (str(lock_id), timeout),
        )

    async def try_remove_and_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
    ) -> Result[LockOutcome, SessionStateError]:
        lock_id = _require_lock_id(lock_id)
        return await self._gated(
            "try_remove_and_release_lock_if_lock_id_match",
            scripts.REMOVE_AND_RELEASE,
            lock_id,
            (str(lock_id),),
        )

    async def try_update_and_release_lock_if_lock_id_match(
        self,
        lock_id: LockId,
        data: bytes,
        timeout: int,
    ) -> Result[LockOutcome, SessionStateError]:
        """
        Replace payload, reset TTL and release, all gated on ``lock_id``.

        Returns:
            Ok(APPLIED) if written, Ok(SUPERSEDED) if another holder took
            over (nothing written), Err(StoreError) on store failure.
        """
        lock_id = _require_lock_id(lock_id)
        payload = _require_payload(data)
        timeout = _require_timeout("timeout", timeout)
        return await self._gated(
            "try_update_and_release_lock_if_lock_id_match",
            scripts.UPDATE_AND_RELEASE,
            lock_id,
            (str(lock_id), payload, timeout),
        )

    def get_lock_age(self, lock_id: LockId) -> timedelta:
        """Local computation from the id's acquired-at part; never negative."""
        age = _require_lock_id(lock_id).acquired_at.elapsed()
        return max(age, timedelta(0))

    # -------------------------------------------------------------------------
    # INTERNALS
    # -------------------------------------------------------------------------

    async def _gated(
        self,
        operation: str,
        script: str,
        lock_id: LockId,
        args: tuple[Any, ...],
    ) -> Result[LockOutcome, SessionStateError]:
        connection = await self._shared.try_get_connection()
        result = await connection.run_script(script, self.keys.all(), args)
        if result.is_err():
            return self._store_failed(operation, result.error)

        reply = result.value
        if reply not in (0, 1):
            return self._store_failed(operation, StoreError.unexpected_reply(operation, reply))

        if reply == 1:
            return Ok(LockOutcome.APPLIED)

        self._metrics.superseded_releases += 1
        self._log.debug("Lock id superseded, no-op", operation=operation, lock_id=str(lock_id))
        return Ok(LockOutcome.SUPERSEDED)

    def _store_failed(self, operation: str, error: StoreError) -> Err[SessionStateError]:
        self._metrics.store_errors += 1
        self._log.error("Store operation failed", operation=operation, error=error.to_dict())
        return Err(error.with_context(session_id=self.session_id, operation=operation))


def shared_connection_for(config: SessionStateConfig) -> SharedConnection:
    """Shared holder wired with the lock scripts for ``config.redis``."""
    return SharedConnection.from_config(config.redis, scripts.LOCK_SCRIPTS)


__all__ = [
    "CacheConnection",
    "CacheMetrics",
    "LockOutcome",
    "LockSnapshot",
    "LockStatus",
    "RedisCacheConnection",
    "shared_connection_for",
]
