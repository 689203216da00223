"""
Shared pytest fixtures for session state tests.

This module provides:
- An in-process Redis server (fakeredis with Lua) shared by every client
  of a test, so separate clients behave like separate processes
- Shared connection holders and cache connections wired to it
- Stub store connections for holder and error-path tests
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional

import fakeredis
import pytest

from sessionstate.core.errors import StoreError
from sessionstate.core.types import Ok, Result
from sessionstate.session.connection import RedisCacheConnection
from sessionstate.session.scripts import LOCK_SCRIPTS
from sessionstate.storage.config import RedisConfig
from sessionstate.storage.redis_client import RedisClientConnection
from sessionstate.storage.shared import SharedConnection

APP = "shop"


# =============================================================================
# Redis fixtures
# =============================================================================

@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    """One Redis server per test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    """Raw client for arranging and asserting store state."""
    return fakeredis.FakeAsyncRedis(server=fake_server)


def make_shared(fake_server: fakeredis.FakeServer) -> SharedConnection:
    """Holder whose connection talks to ``fake_server``; one per simulated process."""
    return SharedConnection(
        lambda: RedisClientConnection(
            RedisConfig(),
            LOCK_SCRIPTS,
            client=fakeredis.FakeAsyncRedis(server=fake_server),
        )
    )


@pytest.fixture
async def shared(fake_server):
    holder = make_shared(fake_server)
    yield holder
    await holder.close()


@pytest.fixture
async def other_process(fake_server):
    """Second holder against the same server, standing in for another process."""
    holder = make_shared(fake_server)
    yield holder
    await holder.close()


@pytest.fixture
def cache(shared) -> RedisCacheConnection:
    return RedisCacheConnection(shared, "sess-1", APP)


# =============================================================================
# Stub store connection
# =============================================================================

class StubConnection:
    """
    StoreConnection double with canned results.

    Records calls so tests can assert what reached the store.
    """

    def __init__(
        self,
        open_result: Optional[Result[None, StoreError]] = None,
        script_result: Optional[Result[Any, StoreError]] = None,
        transaction_result: Optional[Result[list, StoreError]] = None,
    ) -> None:
        self.open_result = open_result or Ok(None)
        self.script_result = script_result or Ok(1)
        self.transaction_result = transaction_result or Ok([])
        self.open_calls = 0
        self.close_calls = 0
        self.calls: List[tuple] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> Result[None, StoreError]:
        self.open_calls += 1
        self._open = self.open_result.is_ok()
        return self.open_result

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False

    async def run_script(self, name, keys, args) -> Result[Any, StoreError]:
        self.calls.append(("script", name, tuple(keys), tuple(args)))
        return self.script_result

    async def transaction(self, operation, build) -> Result[list, StoreError]:
        self.calls.append(("transaction", operation))
        return self.transaction_result

    async def health_check(self) -> Result[dict, StoreError]:
        return Ok({"connected": True, "redis_version": "stub"})


@pytest.fixture
def stub_factory() -> Callable[..., Callable[[], StubConnection]]:
    """Build a factory that records every StubConnection it creates."""

    def _make(**kwargs: Any) -> Callable[[], StubConnection]:
        created: List[StubConnection] = []

        def factory() -> StubConnection:
            connection = StubConnection(**kwargs)
            created.append(connection)
            return connection

        factory.created = created  # type: ignore[attr-defined]
        return factory

    return _make
