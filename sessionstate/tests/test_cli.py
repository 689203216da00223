"""
Operator CLI Tests

Run: python -m pytest sessionstate/tests/test_cli.py -v
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from sessionstate import __main__ as cli
from sessionstate.core.errors import StoreError
from sessionstate.core.types import Err
from sessionstate.session.connection import RedisCacheConnection
from sessionstate.storage.shared import SharedConnection


@pytest.fixture(autouse=True)
def quiet_env(monkeypatch):
    # Root handlers are left to pytest
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setenv("SESSIONSTATE_APPLICATION_NAME", "shop")
    for name in ("SESSIONSTATE_LOCK_TIMEOUT_S", "SESSIONSTATE_SESSION_TIMEOUT_S", "REDIS_MODE", "REDIS_PORT"):
        monkeypatch.delenv(name, raising=False)


def _output(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


async def test_inspect_unlocked_session(shared, capsys):
    await RedisCacheConnection(shared, "abc", "shop").set(b"hello", 60)

    code = await cli.main(["inspect", "abc"], shared=shared)

    document = _output(capsys)
    assert code == cli.EXIT_OK
    assert document["status"] == "UNLOCKED"
    assert document["timeout_s"] == 60
    assert document["data_bytes"] == 5
    assert document["keys"]["lock"] == "{shop:abc}_Write_Lock"


async def test_inspect_locked_session(shared, capsys):
    cache = RedisCacheConnection(shared, "abc", "shop")
    taken = (await cache.try_take_write_lock_and_get_data(None, 110)).unwrap()

    code = await cli.main(["inspect", "abc"], shared=shared)

    document = _output(capsys)
    assert code == cli.EXIT_OK
    assert document["status"] == "LOCKED"
    assert document["lock_id"] == str(taken.lock_id)
    assert document["lock_age_s"] >= 0
    assert document["lock_timeout_s"] == 110
    assert document["stale"] is False


async def test_inspect_application_override(shared, capsys):
    await cli.main(["inspect", "abc", "--application", "other"], shared=shared)

    assert _output(capsys)["keys"]["data"] == "{other:abc}_Data"


async def test_ping(stub_factory, capsys):
    code = await cli.main(["ping"], shared=SharedConnection(stub_factory()))

    assert code == cli.EXIT_OK
    assert _output(capsys)["redis_version"] == "stub"


async def test_unreachable_store(stub_factory, capsys):
    down = Err(StoreError.connection_failed("localhost", 6379))

    code = await cli.main(["ping"], shared=SharedConnection(stub_factory(open_result=down)))

    assert code == cli.EXIT_STORE_ERROR
    assert _output(capsys)["error"]["code"] == "STORE_CONNECTION_FAILED"


async def test_bad_configuration(monkeypatch, stub_factory, capsys):
    monkeypatch.setenv("SESSIONSTATE_LOCK_TIMEOUT_S", "never")

    code = await cli.main(["ping"], shared=SharedConnection(stub_factory()))

    assert code == cli.EXIT_CONFIG_ERROR
    assert _output(capsys)["ok"] is False


async def test_inspect_reports_stale_lock(monkeypatch, shared, capsys):
    monkeypatch.setenv("SESSIONSTATE_LOCK_TIMEOUT_S", "30")
    cache = RedisCacheConnection(shared, "abc", "shop")
    earlier = datetime.now(timezone.utc) - timedelta(seconds=45)
    (await cache.try_take_write_lock_and_get_data(earlier, 110)).unwrap()

    await cli.main(["inspect", "abc"], shared=shared)

    document = _output(capsys)
    assert document["lock_timeout_s"] == 30
    assert document["lock_age_s"] >= 45
    assert document["stale"] is True


async def test_touch_extends_by_session_timeout(monkeypatch, shared, redis_client, capsys):
    monkeypatch.setenv("SESSIONSTATE_SESSION_TIMEOUT_S", "900")
    await RedisCacheConnection(shared, "abc", "shop").set(b"hello", 60)

    code = await cli.main(["touch", "abc"], shared=shared)

    assert code == cli.EXIT_OK
    assert _output(capsys)["timeout_s"] == 900
    assert 60 < await redis_client.ttl("{shop:abc}_Data") <= 900
    assert 60 < await redis_client.ttl("{shop:abc}_Internal") <= 900
