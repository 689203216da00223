"""
Session module: write-lock protocol over the shared store connection.

Components:
- KeyGenerator: Namespaced, hash-tagged keys per session id
- CacheConnection: Record lifecycle and identifier-gated lock operations
- Lua scripts: Atomic take/release/update/remove
"""

from sessionstate.session.keys import KeyGenerator
from sessionstate.session.scripts import LOCK_SCRIPTS
from sessionstate.session.connection import (
    CacheConnection,
    CacheMetrics,
    LockOutcome,
    LockSnapshot,
    LockStatus,
    RedisCacheConnection,
    shared_connection_for,
)

__all__ = [
    "KeyGenerator",
    "LOCK_SCRIPTS",
    "CacheConnection",
    "CacheMetrics",
    "LockOutcome",
    "LockSnapshot",
    "LockStatus",
    "RedisCacheConnection",
    "shared_connection_for",
]
