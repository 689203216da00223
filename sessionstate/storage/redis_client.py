"""
Redis Store Connection
======================

redis-py (``redis.asyncio``) implementation of the StoreConnection
capability used by the session lock protocol.

Design Principles:
------------------
1. **Lock-Free**: CAS via Lua scripts, no Python-side locks
2. **Connection Pooling**: One pooled client shared by every caller
3. **Script Cache**: Scripts loaded once with SCRIPT LOAD, run via EVALSHA,
   reloaded transparently after a NOSCRIPT reply
4. **Result Monad**: redis-py exceptions are mapped to StoreError at this
   boundary and never escape as exceptions

Thread Safety:
--------------
- Connection pool handles concurrency internally
- Lua scripts execute atomically on the server
- A client is bound to the event loop it was first used on
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Optional,
    Sequence,
)

import redis.asyncio as aioredis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    NoScriptError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from sessionstate.core.errors import StoreError
from sessionstate.core.types import Err, Ok, Result
from sessionstate.storage.config import RedisConfig, RedisMode
from sessionstate.storage.protocols import ScriptArg, ScriptRegistry

if TYPE_CHECKING:
    from redis.asyncio.client import Pipeline

logger = logging.getLogger(__name__)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

@dataclass(slots=True)
class ClientMetrics:
    """
    Round-trip counters for one store connection.

    Plain increments; all updates happen on the event loop thread.
    """
    script_calls: int = 0
    script_reloads: int = 0
    transactions: int = 0
    latency_sum_ns: int = 0

    connection_errors: int = 0
    timeout_errors: int = 0
    command_errors: int = 0

    def record(self, latency_ns: int) -> None:
        self.latency_sum_ns += latency_ns

    def get_avg_latency_ms(self) -> float:
        """Average round-trip latency in milliseconds."""
        calls = self.script_calls + self.transactions
        if calls == 0:
            return 0.0
        return (self.latency_sum_ns / calls) / 1_000_000


# =============================================================================
# CLIENT CONSTRUCTION
# =============================================================================

def build_client(config: RedisConfig) -> Any:
    """
    Construct the redis-py client for the configured topology.

    No network I/O happens here; the first command connects.
    """
    kwargs = config.get_connection_kwargs()

    if config.mode == RedisMode.CLUSTER:
        from redis.asyncio.cluster import RedisCluster
        return RedisCluster(**kwargs)

    if config.mode == RedisMode.SENTINEL:
        from redis.asyncio.sentinel import Sentinel
        # Sentinel resolves the primary's address itself
        kwargs.pop("host")
        kwargs.pop("port")
        sentinel = Sentinel(
            list(config.sentinel_hosts),
            socket_timeout=config.socket_timeout_ms / 1000,
        )
        return sentinel.master_for(
            config.sentinel_service,
            redis_class=aioredis.Redis,
            **kwargs,
        )

    return aioredis.Redis(**kwargs)


# =============================================================================
# REDIS CLIENT CONNECTION
# =============================================================================

class RedisClientConnection:
    """
    Pooled Redis connection with a registry of atomic scripts.

    Example:
        >>> connection = RedisClientConnection(RedisConfig(), LOCK_SCRIPTS)
        >>> result = await connection.open()
        >>> reply = await connection.run_script("take_write_lock", keys, args)
        >>> await connection.close()
    """

    __slots__ = (
        "_config",
        "_client",
        "_scripts",
        "_shas",
        "_connected",
        "_metrics",
    )

    def __init__(
        self,
        config: RedisConfig,
        scripts: ScriptRegistry,
        client: Optional[Any] = None,
    ) -> None:
        """
        Args:
            config: Redis connection configuration.
            scripts: Script name -> Lua source, loaded at open().
            client: Pre-built redis-py compatible client. Built from
                ``config`` when omitted.

        Note:
            Call `open()` before performing operations.
        """
        self._config = config
        self._client = client
        self._scripts = dict(scripts)
        self._shas: Dict[str, str] = {}
        self._connected = False
        self._metrics = ClientMetrics()

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._connected

    @property
    def metrics(self) -> ClientMetrics:
        return self._metrics

    @property
    def config(self) -> RedisConfig:
        return self._config

    async def open(self) -> Result[None, StoreError]:
        """
        Connect and load every registered script.

        Returns:
            Ok(None) on success, Err(StoreError) on failure.
        """
        if self._connected:
            return Ok(None)

        if self._client is None:
            self._client = build_client(self._config)

        try:
            await self._client.ping()
            for name, source in self._scripts.items():
                self._shas[name] = await self._client.script_load(source)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self._metrics.connection_errors += 1
            logger.error(
                "Store connection failed",
                extra={"host": self._config.host, "port": self._config.port, "error": str(e)},
            )
            return Err(StoreError.connection_failed(self._config.host, self._config.port, cause=e))

        self._connected = True
        logger.info(
            "Store connection open",
            extra={"host": self._config.host, "port": self._config.port, "scripts": len(self._shas)},
        )
        return Ok(None)

    async def close(self) -> None:
        """
        Close pooled connections.

        Safe to call multiple times.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._shas.clear()
        self._connected = False

    async def health_check(self) -> Result[Dict[str, Any], StoreError]:
        """
        Check store health.

        Returns:
            Ok with server facts and connection metrics, Err on failure.
        """
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected())

        start_ns = time.perf_counter_ns()
        try:
            await self._client.ping()
            info = await self._client.info(section="server")
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._map_error("health_check", e))

        version = info.get("redis_version", "unknown")
        if isinstance(version, bytes):
            version = version.decode()

        return Ok({
            "connected": True,
            "redis_version": version,
            "ping_ms": (time.perf_counter_ns() - start_ns) / 1_000_000,
            "metrics": {
                "script_calls": self._metrics.script_calls,
                "script_reloads": self._metrics.script_reloads,
                "transactions": self._metrics.transactions,
                "avg_latency_ms": self._metrics.get_avg_latency_ms(),
            },
        })

    # -------------------------------------------------------------------------
    # ATOMIC OPERATIONS
    # -------------------------------------------------------------------------

    async def run_script(
        self,
        name: str,
        keys: Sequence[str],
        args: Sequence[ScriptArg],
    ) -> Result[Any, StoreError]:
        """
        Run a registered script via EVALSHA.

        A NOSCRIPT reply (server restarted or SCRIPT FLUSH) reloads the
        script and runs it once more. The reload cannot double-apply: a
        NOSCRIPT reply means the script never ran.

        Raises:
            KeyError: If ``name`` was not registered.
        """
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected())

        source = self._scripts[name]
        start_ns = time.perf_counter_ns()

        try:
            try:
                reply = await self._client.evalsha(self._shas[name], len(keys), *keys, *args)
            except NoScriptError:
                self._metrics.script_reloads += 1
                logger.warning("Script cache miss, reloading", extra={"script": name})
                self._shas[name] = await self._client.script_load(source)
                reply = await self._client.evalsha(self._shas[name], len(keys), *keys, *args)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._map_error(name, e))

        self._metrics.script_calls += 1
        self._metrics.record(time.perf_counter_ns() - start_ns)
        return Ok(reply)

    async def transaction(
        self,
        operation: str,
        build: Callable[["Pipeline"], None],
    ) -> Result[list[Any], StoreError]:
        """
        Queue commands on a MULTI/EXEC pipeline and execute atomically.

        Args:
            operation: Name used in errors and logs.
            build: Called with the pipeline to queue commands.

        Returns:
            Ok(list of replies in queue order), Err(StoreError) on failure.
        """
        if not self._connected or self._client is None:
            return Err(StoreError.not_connected())

        start_ns = time.perf_counter_ns()

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                build(pipe)
                replies = await pipe.execute()
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._map_error(operation, e))

        self._metrics.transactions += 1
        self._metrics.record(time.perf_counter_ns() - start_ns)
        return Ok(list(replies))

    # -------------------------------------------------------------------------
    # ERROR MAPPING
    # -------------------------------------------------------------------------

    def _map_error(self, operation: str, error: BaseException) -> StoreError:
        """Translate a redis-py/transport exception into a StoreError."""
        if isinstance(error, (RedisTimeoutError, asyncio.TimeoutError)):
            self._metrics.timeout_errors += 1
            return StoreError.timeout(operation, cause=error)

        if isinstance(error, (RedisConnectionError, OSError)):
            self._metrics.connection_errors += 1
            return StoreError.connection_failed(self._config.host, self._config.port, cause=error)

        self._metrics.command_errors += 1
        return StoreError.command_failed(operation, cause=error)


__all__ = [
    "ClientMetrics",
    "RedisClientConnection",
    "build_client",
]
