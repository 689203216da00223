"""
Redis Store Connection Tests

Error mapping and script cache handling, using a mocked redis-py client.

Run: python -m pytest sessionstate/tests/test_redis_client.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.asyncio.cluster import ClusterPipeline, RedisCluster
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    NoScriptError,
    ResponseError,
    TimeoutError as RedisTimeoutError,
)

from sessionstate.core.errors import ErrorCode
from sessionstate.storage.config import RedisConfig, RedisMode
from sessionstate.storage.redis_client import ClientMetrics, RedisClientConnection, build_client

SCRIPTS = {"echo": "return ARGV[1]"}


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.script_load = AsyncMock(return_value="sha-echo")
    client.evalsha = AsyncMock(return_value=b"hello")
    client.info = AsyncMock(return_value={"redis_version": "7.2.4"})
    client.aclose = AsyncMock()
    return client


@pytest.fixture
async def connection(mock_client) -> RedisClientConnection:
    connection = RedisClientConnection(RedisConfig(), SCRIPTS, client=mock_client)
    assert (await connection.open()).is_ok()
    return connection


async def test_open_loads_scripts(connection, mock_client):
    assert connection.is_open
    mock_client.script_load.assert_awaited_once_with("return ARGV[1]")


async def test_open_failure_maps_to_connection_failed(mock_client):
    mock_client.ping.side_effect = RedisConnectionError("refused")
    connection = RedisClientConnection(RedisConfig(host="cache", port=6380), SCRIPTS, client=mock_client)

    result = await connection.open()

    assert result.is_err()
    assert result.error.code is ErrorCode.STORE_CONNECTION_FAILED
    assert result.error.context == {"host": "cache", "port": 6380}
    assert isinstance(result.error.cause, RedisConnectionError)
    assert not connection.is_open


async def test_run_script_uses_evalsha(connection, mock_client):
    result = await connection.run_script("echo", ["k1"], ["hello"])

    assert result.unwrap() == b"hello"
    mock_client.evalsha.assert_awaited_once_with("sha-echo", 1, "k1", "hello")
    assert connection.metrics.script_calls == 1


async def test_run_script_reloads_after_noscript(connection, mock_client):
    mock_client.evalsha.side_effect = [NoScriptError("NOSCRIPT No matching script"), b"hello"]

    result = await connection.run_script("echo", ["k1"], ["hello"])

    assert result.unwrap() == b"hello"
    assert mock_client.script_load.await_count == 2
    assert connection.metrics.script_reloads == 1


@pytest.mark.parametrize(
    "raised, code",
    [
        (RedisTimeoutError("slow"), ErrorCode.STORE_TIMEOUT),
        (asyncio.TimeoutError(), ErrorCode.STORE_TIMEOUT),
        (RedisConnectionError("reset"), ErrorCode.STORE_CONNECTION_FAILED),
        (OSError("broken pipe"), ErrorCode.STORE_CONNECTION_FAILED),
        (ResponseError("WRONGTYPE"), ErrorCode.STORE_COMMAND_FAILED),
    ],
)
async def test_run_script_error_mapping(connection, mock_client, raised, code):
    mock_client.evalsha.side_effect = raised

    result = await connection.run_script("echo", ["k1"], ["hello"])

    assert result.is_err()
    assert result.error.code is code
    assert result.error.cause is raised


async def test_operations_before_open_are_not_connected(mock_client):
    connection = RedisClientConnection(RedisConfig(), SCRIPTS, client=mock_client)

    script = await connection.run_script("echo", [], [])
    batch = await connection.transaction("noop", lambda pipe: None)
    health = await connection.health_check()

    for result in (script, batch, health):
        assert result.error.code is ErrorCode.STORE_NOT_CONNECTED


async def test_health_check(connection):
    result = await connection.health_check()

    health = result.unwrap()
    assert health["connected"] is True
    assert health["redis_version"] == "7.2.4"
    assert "avg_latency_ms" in health["metrics"]


async def test_close_is_idempotent(connection, mock_client):
    await connection.close()
    await connection.close()

    assert not connection.is_open
    mock_client.aclose.assert_awaited_once()


async def test_transaction_against_fake_server(redis_client):
    connection = RedisClientConnection(RedisConfig(), {}, client=redis_client)
    await connection.open()

    def build(pipe):
        pipe.set("a", b"1")
        pipe.get("a")

    result = await connection.transaction("pair", build)

    assert result.unwrap() == [True, b"1"]
    assert connection.metrics.transactions == 1


def test_average_latency():
    metrics = ClientMetrics(script_calls=2, transactions=2)
    metrics.record(4_000_000)
    metrics.record(4_000_000)

    assert metrics.get_avg_latency_ms() == 2.0
    assert ClientMetrics().get_avg_latency_ms() == 0.0


def test_build_standalone_client():
    import redis.asyncio as aioredis

    client = build_client(RedisConfig(host="cache", port=6380, db=3))

    assert isinstance(client, aioredis.Redis)
    kwargs = client.connection_pool.connection_kwargs
    assert (kwargs["host"], kwargs["port"], kwargs["db"]) == ("cache", 6380, 3)


def test_build_sentinel_client():
    from redis.asyncio.sentinel import SentinelConnectionPool

    config = RedisConfig(mode=RedisMode.SENTINEL, sentinel_hosts=(("s1", 26379),))

    client = build_client(config)

    assert isinstance(client.connection_pool, SentinelConnectionPool)


async def test_cluster_transaction_runs_multi_exec(monkeypatch):
    transactional = []

    async def initialize(pipe):
        return pipe

    async def execute(pipe, raise_on_error=True, allow_redirections=True):
        transactional.append(pipe._transaction)
        return [True, b"1"]

    async def reset(pipe):
        return None

    monkeypatch.setattr(RedisCluster, "ping", AsyncMock(return_value=True))
    monkeypatch.setattr(ClusterPipeline, "initialize", initialize)
    monkeypatch.setattr(ClusterPipeline, "execute", execute)
    monkeypatch.setattr(ClusterPipeline, "reset", reset)
    config = RedisConfig(mode=RedisMode.CLUSTER, host="node-1")
    connection = RedisClientConnection(config, {})

    assert (await connection.open()).is_ok()
    result = await connection.transaction("pair", lambda pipe: None)

    assert result.unwrap() == [True, b"1"]
    assert transactional == [True]
