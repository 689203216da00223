"""
Redis Backend Configuration
===========================

Type-safe, immutable configuration for the remote session store.

Design Principles:
------------------
1. **Immutability**: Frozen dataclasses, safe to share across tasks
2. **Validation**: Pre-conditions checked at construction time
3. **Defaults**: Sensible defaults for development; explicit for production
4. **Environment**: Supports loading from environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# ENUMERATIONS
# =============================================================================

class RedisMode(Enum):
    """
    Redis deployment topology.

    Determines which redis-py client class is constructed.
    """
    STANDALONE = auto()  # Single node or managed endpoint
    SENTINEL = auto()    # Sentinel-managed primary with failover
    CLUSTER = auto()     # Redis Cluster (keys of a session share a hash tag)


# =============================================================================
# REDIS CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Redis/Valkey connection configuration.

    Responses are never decoded by the client: session payloads are opaque
    bytes and lock identifiers are decoded explicitly.

    Attributes:
        host: Redis server hostname or IP address.
        port: Redis server port (1-65535).
        password: Optional authentication password.
        username: Optional ACL username.
        db: Logical database index (0-15 for standalone).
        mode: Deployment topology (standalone/sentinel/cluster).
        sentinel_hosts: (host, port) tuples for Sentinel mode.
        sentinel_service: Name of the monitored primary in Sentinel mode.
        max_connections: Connection pool size. Must be > 0.
        connect_timeout_ms: TCP connection timeout in milliseconds.
        socket_timeout_ms: Socket read/write timeout in milliseconds.
        ssl: Enable TLS for connections.

    Example:
        >>> config = RedisConfig.from_env()
        >>> config = RedisConfig(host="redis.example.com", password="secret")
    """
    sentinel_hosts: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    sentinel_service: str = "mymaster"
    password: Optional[str] = None
    username: Optional[str] = None
    host: str = "localhost"

    socket_timeout_ms: int = 5000
    connect_timeout_ms: int = 2000
    max_connections: int = 50
    port: int = 6379
    db: int = 0
    mode: RedisMode = RedisMode.STANDALONE

    ssl: bool = False

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if not (1 <= self.port <= 65535):
            raise ValueError(f"port must be in [1, 65535], got {self.port}")

        if self.mode == RedisMode.STANDALONE and not (0 <= self.db <= 15):
            raise ValueError(f"db must be in [0, 15] for standalone, got {self.db}")

        # Cluster only has database 0
        if self.mode == RedisMode.CLUSTER and self.db != 0:
            raise ValueError(f"db must be 0 in cluster mode, got {self.db}")

        if self.max_connections <= 0:
            raise ValueError(f"max_connections must be > 0, got {self.max_connections}")

        if self.connect_timeout_ms <= 0:
            raise ValueError(f"connect_timeout_ms must be > 0, got {self.connect_timeout_ms}")
        if self.socket_timeout_ms <= 0:
            raise ValueError(f"socket_timeout_ms must be > 0, got {self.socket_timeout_ms}")

        if self.mode == RedisMode.SENTINEL and len(self.sentinel_hosts) == 0:
            raise ValueError("sentinel_hosts required when mode == SENTINEL")

    @classmethod
    def from_env(cls, prefix: str = "REDIS") -> "RedisConfig":
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_HOST: Server hostname (default: localhost)
        - {prefix}_PORT: Server port (default: 6379)
        - {prefix}_USERNAME / {prefix}_PASSWORD: ACL credentials
        - {prefix}_DB: Database index (default: 0)
        - {prefix}_SSL: Enable TLS (default: false)
        - {prefix}_MAX_CONNECTIONS: Pool size (default: 50)
        - {prefix}_MODE: standalone|sentinel|cluster
        - {prefix}_SENTINEL_HOSTS: Comma-separated host:port pairs
        - {prefix}_SENTINEL_SERVICE: Monitored primary name

        Raises:
            ValueError: On unparsable numbers or violated invariants.
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        mode_str = _get("MODE", "standalone").lower()
        mode_map = {
            "standalone": RedisMode.STANDALONE,
            "sentinel": RedisMode.SENTINEL,
            "cluster": RedisMode.CLUSTER,
        }
        if mode_str not in mode_map:
            raise ValueError(f"{prefix}_MODE must be one of {sorted(mode_map)}, got {mode_str!r}")

        sentinel_hosts: Tuple[Tuple[str, int], ...] = tuple()
        sentinel_str = _get("SENTINEL_HOSTS")
        if sentinel_str:
            parsed: List[Tuple[str, int]] = []
            for entry in sentinel_str.split(","):
                host, _, port = entry.strip().rpartition(":")
                if host and port:
                    parsed.append((host, int(port)))
            sentinel_hosts = tuple(parsed)

        return cls(
            host=_get("HOST", "localhost"),
            port=_get_int("PORT", 6379),
            username=_get("USERNAME") or None,
            password=_get("PASSWORD") or None,
            db=_get_int("DB", 0),
            mode=mode_map[mode_str],
            sentinel_hosts=sentinel_hosts,
            sentinel_service=_get("SENTINEL_SERVICE", "mymaster"),
            max_connections=_get_int("MAX_CONNECTIONS", 50),
            connect_timeout_ms=_get_int("CONNECT_TIMEOUT_MS", 2000),
            socket_timeout_ms=_get_int("SOCKET_TIMEOUT_MS", 5000),
            ssl=_get_bool("SSL", False),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Generate kwargs for the redis-py client constructor.

        Returns:
            Dict suitable for redis.asyncio.Redis() or RedisCluster().
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "max_connections": self.max_connections,
            "socket_connect_timeout": self.connect_timeout_ms / 1000.0,
            "socket_timeout": self.socket_timeout_ms / 1000.0,
            "decode_responses": False,
            "ssl": self.ssl,
        }
        if self.mode != RedisMode.CLUSTER:
            kwargs["db"] = self.db
        if self.username:
            kwargs["username"] = self.username
        if self.password:
            kwargs["password"] = self.password
        return kwargs


__all__ = ["RedisMode", "RedisConfig"]
