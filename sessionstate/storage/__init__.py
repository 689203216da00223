"""
Storage module: Redis connection capability.

- RedisConfig: validated connection settings
- RedisClientConnection: redis-py client with a Lua script registry
- SharedConnection: lazily opened, process-wide connection holder
"""

from sessionstate.storage.config import RedisConfig, RedisMode
from sessionstate.storage.protocols import StoreConnection
from sessionstate.storage.redis_client import RedisClientConnection, ClientMetrics
from sessionstate.storage.shared import SharedConnection

__all__ = [
    "RedisConfig",
    "RedisMode",
    "StoreConnection",
    "RedisClientConnection",
    "ClientMetrics",
    "SharedConnection",
]
