"""
Shared Connection Holder

One lazily opened store connection per process, handed to every caller.

Algorithm (double-checked initialization):
    1. Fast path: return the published connection without locking
    2. Otherwise take the guard and check again, since another task may
       have published while this one waited
    3. Construct via the factory, open, then publish

A connection is published only after open() succeeded. A failed attempt
leaves nothing behind, so the next call starts from scratch. Retry policy
belongs to the caller.

The holder belongs to the event loop that first used it. Calls from any
other loop fail with StoreError at once; close() gives the binding up.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Optional

from sessionstate.core.errors import StoreError
from sessionstate.storage.config import RedisConfig
from sessionstate.storage.protocols import ScriptRegistry, StoreConnection
from sessionstate.storage.redis_client import RedisClientConnection

logger = logging.getLogger(__name__)


class SharedConnection:
    """
    Lazily constructed, process-wide store connection.

    The guard only protects one-time construction; it is never held across
    lock-protocol round trips.

    Usage:
        shared = SharedConnection.from_config(RedisConfig.from_env(), LOCK_SCRIPTS)
        connection = await shared.try_get_connection()

    Thread Safety:
        Safe for any number of tasks on one event loop. The underlying
        redis-py client is bound to that loop. A call from a second loop
        (another thread running asyncio.run) raises StoreError.
    """

    __slots__ = ("_factory", "_connection", "_lock", "_loop", "_owner")

    def __init__(self, factory: Callable[[], StoreConnection]) -> None:
        self._factory = factory
        self._connection: Optional[StoreConnection] = None
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._owner = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: RedisConfig,
        scripts: ScriptRegistry,
    ) -> SharedConnection:
        """Holder whose factory builds a RedisClientConnection."""
        return cls(lambda: RedisClientConnection(config, scripts))

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def try_get_connection(self) -> StoreConnection:
        """
        Return the shared connection, constructing and opening it on first use.

        Raises:
            StoreError: If open() fails (nothing is cached), or if the holder
                is bound to another event loop.
            Exception: Whatever the factory raises, unchanged.
        """
        self._bind_loop()
        connection = self._connection
        if connection is not None:
            return connection

        async with self._lock:
            if self._connection is None:
                candidate = self._factory()
                opened = await candidate.open()
                if opened.is_err():
                    await candidate.close()
                    raise opened.error
                self._connection = candidate
                logger.debug("Shared store connection published")
            return self._connection

    async def close(self) -> None:
        """
        Close and forget the published connection.

        The next try_get_connection() opens a fresh one, and once nothing is
        published the holder may be adopted by another event loop.
        """
        if self._loop is None:
            return
        self._bind_loop()
        async with self._lock:
            connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

        with self._owner:
            if self._connection is None and not self._lock.locked():
                # asyncio.Lock remembers the loop it first waited on
                self._lock = asyncio.Lock()
                self._loop = None

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is loop:
            return
        with self._owner:
            if self._loop is None:
                self._loop = loop
            elif self._loop is not loop:
                raise StoreError.wrong_event_loop()


__all__ = ["SharedConnection"]
