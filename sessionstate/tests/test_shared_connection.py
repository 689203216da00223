"""
Shared Connection Holder Tests

Tests lazy, exactly-once construction:
- Concurrent first use opens one connection
- Failed opens are never cached
- close() forces a fresh connection on next use
- A second event loop is refused instead of blocking

Run: python -m pytest sessionstate/tests/test_shared_connection.py -v
"""

from __future__ import annotations

import asyncio
import hashlib
import threading

import pytest

from sessionstate.core.errors import ErrorCode, StoreError
from sessionstate.core.types import Err
from sessionstate.session.scripts import LOCK_SCRIPTS
from sessionstate.storage.shared import SharedConnection


def store_down():
    return Err(StoreError.connection_failed("localhost", 6379))


async def test_first_use_constructs_and_opens(stub_factory):
    factory = stub_factory()
    shared = SharedConnection(factory)

    assert not shared.is_connected
    connection = await shared.try_get_connection()

    assert shared.is_connected
    assert connection.open_calls == 1
    assert factory.created == [connection]


async def test_later_calls_reuse_instance(stub_factory):
    factory = stub_factory()
    shared = SharedConnection(factory)

    first = await shared.try_get_connection()
    second = await shared.try_get_connection()

    assert first is second
    assert len(factory.created) == 1
    assert first.open_calls == 1


async def test_concurrent_first_use_opens_exactly_once(stub_factory):
    factory = stub_factory()
    shared = SharedConnection(factory)

    connections = await asyncio.gather(*(shared.try_get_connection() for _ in range(50)))

    assert len(factory.created) == 1
    assert all(c is connections[0] for c in connections)
    assert connections[0].open_calls == 1


async def test_failed_open_propagates_and_is_not_cached(stub_factory):
    failing = stub_factory(open_result=store_down())
    shared = SharedConnection(failing)

    with pytest.raises(StoreError) as excinfo:
        await shared.try_get_connection()

    assert excinfo.value.code is ErrorCode.STORE_CONNECTION_FAILED
    assert not shared.is_connected
    assert failing.created[0].close_calls == 1

    # Next call starts from scratch
    with pytest.raises(StoreError):
        await shared.try_get_connection()
    assert len(failing.created) == 2


async def test_recovers_after_failed_open(stub_factory):
    outcomes = [store_down(), None]
    created = []

    def factory():
        connection = stub_factory(open_result=outcomes.pop(0))()
        created.append(connection)
        return connection

    shared = SharedConnection(factory)

    with pytest.raises(StoreError):
        await shared.try_get_connection()
    connection = await shared.try_get_connection()

    assert connection is created[1]
    assert connection.is_open


async def test_factory_exception_propagates_unchanged():
    def factory():
        raise RuntimeError("cannot build client")

    shared = SharedConnection(factory)

    with pytest.raises(RuntimeError, match="cannot build client"):
        await shared.try_get_connection()
    assert not shared.is_connected


async def test_close_forces_reconnect(stub_factory):
    factory = stub_factory()
    shared = SharedConnection(factory)

    first = await shared.try_get_connection()
    await shared.close()
    second = await shared.try_get_connection()

    assert first.close_calls == 1
    assert second is not first
    assert len(factory.created) == 2


async def test_close_without_connection_is_noop(stub_factory):
    shared = SharedConnection(stub_factory())

    await shared.close()

    assert not shared.is_connected


async def test_real_client_opens_and_loads_scripts(shared, redis_client):
    connection = await shared.try_get_connection()

    assert connection.is_open
    shas = [hashlib.sha1(source.encode()).hexdigest() for source in LOCK_SCRIPTS.values()]
    assert await redis_client.script_exists(*shas) == [True] * len(shas)


# =============================================================================
# Event loop ownership
# =============================================================================

def slow_opening(build, delay_s: float = 0.05):
    """Factory whose connections take ``delay_s`` to open."""

    def factory():
        connection = build()
        opened = connection.open

        async def open_slowly():
            await asyncio.sleep(delay_s)
            return await opened()

        connection.open = open_slowly
        return connection

    return factory


def test_second_event_loop_is_refused(stub_factory):
    build = stub_factory()
    shared = SharedConnection(slow_opening(build))
    start = threading.Barrier(2)
    outcomes = []

    def worker():
        start.wait()
        try:
            outcomes.append(asyncio.run(shared.try_get_connection()))
        except StoreError as error:
            outcomes.append(error)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert not any(thread.is_alive() for thread in threads)
    refused = [o for o in outcomes if isinstance(o, StoreError)]
    assert len(outcomes) == 2
    assert len(refused) == 1
    assert refused[0].code is ErrorCode.STORE_WRONG_EVENT_LOOP
    assert len(build.created) == 1


def test_other_loop_refused_after_publish(stub_factory):
    shared = SharedConnection(stub_factory())
    asyncio.run(shared.try_get_connection())

    with pytest.raises(StoreError) as excinfo:
        asyncio.run(shared.try_get_connection())

    assert excinfo.value.code is ErrorCode.STORE_WRONG_EVENT_LOOP


def test_close_releases_event_loop(stub_factory):
    factory = stub_factory()
    shared = SharedConnection(factory)

    async def use_once():
        connection = await shared.try_get_connection()
        await shared.close()
        return connection

    first = asyncio.run(use_once())
    second = asyncio.run(use_once())

    assert first is not second
    assert [c.close_calls for c in factory.created] == [1, 1]
