"""
Redis-backed Session State Locking

Lets many concurrent request handlers, across processes, read, mutate and
expire one shared session record in Redis without corrupting it and without
leaking locks when a holder crashes:
- Key Generator: per-session keys sharing one Redis Cluster hash tag
- Shared Connection: one lazily opened store connection per process
- Cache Connection: write-lock protocol as atomic Lua scripts and
  MULTI/EXEC batches, with stale-lock takeover

Usage:
    config = SessionStateConfig.from_env().unwrap()
    shared = shared_connection_for(config)
    cache = RedisCacheConnection(shared, session_id, config.application_name)

    taken = await cache.try_take_write_lock_and_get_data(None, config.lock_timeout_s)
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
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
from sessionstate.core.config import SessionStateConfig
from sessionstate.storage import RedisConfig, RedisMode, SharedConnection
from sessionstate.session import (
    CacheConnection,
    KeyGenerator,
    LockOutcome,
    LockSnapshot,
    LockStatus,
    RedisCacheConnection,
    shared_connection_for,
)
from sessionstate.reliability import RetryPolicy, acquire_write_lock

__all__ = [
    "__version__",
    # Core types
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "LockId",
    # Errors
    "ErrorCode",
    "SessionStateError",
    "StoreError",
    "ValidationError",
    "LockError",
    "ConfigurationError",
    # Config
    "SessionStateConfig",
    "RedisConfig",
    "RedisMode",
    # Session locking
    "SharedConnection",
    "CacheConnection",
    "KeyGenerator",
    "LockOutcome",
    "LockSnapshot",
    "LockStatus",
    "RedisCacheConnection",
    "shared_connection_for",
    # Reliability
    "RetryPolicy",
    "acquire_write_lock",
]
