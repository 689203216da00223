#!/usr/bin/env python3
"""
Session State Locking: Operator CLI

Usage:
    python -m sessionstate ping
    python -m sessionstate inspect <session_id>
    python -m sessionstate touch <session_id>

    # Or against another store / namespace
    REDIS_HOST=cache.internal SESSIONSTATE_APPLICATION_NAME=shop \\
        python -m sessionstate inspect 3f2a9c

Every command prints one JSON document to stdout and exits non-zero when
the store cannot be reached or configuration is invalid. inspect judges
staleness against SESSIONSTATE_LOCK_TIMEOUT_S; touch extends the record by
SESSIONSTATE_SESSION_TIMEOUT_S.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Sequence

from sessionstate.core.config import SessionStateConfig
from sessionstate.core.errors import SessionStateError
from sessionstate.observability.logging import LogLevel, setup_logging
from sessionstate.session.connection import RedisCacheConnection, shared_connection_for
from sessionstate.storage.shared import SharedConnection

EXIT_OK = 0
EXIT_STORE_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _emit(document: dict[str, Any]) -> None:
    print(json.dumps(document, indent=2, default=str))


async def ping(shared: SharedConnection) -> int:
    """Health check: round trip plus server version."""
    connection = await shared.try_get_connection()
    result = await connection.health_check()
    if result.is_err():
        _emit({"ok": False, "error": result.error.to_dict()})
        return EXIT_STORE_ERROR
    _emit({"ok": True, **result.value})
    return EXIT_OK


async def inspect(
    shared: SharedConnection,
    session_id: str,
    application_name: str,
    lock_timeout_s: int,
) -> int:
    """Print the lock state and record of one session without touching it."""
    cache = RedisCacheConnection(shared, session_id, application_name)
    result = await cache.try_check_write_lock_and_get_data()
    if result.is_err():
        _emit({"ok": False, "error": result.error.to_dict()})
        return EXIT_STORE_ERROR

    snapshot = result.value
    document: dict[str, Any] = {
        "ok": True,
        "session_id": session_id,
        "keys": dict(zip(("data", "internal", "lock"), cache.keys.all())),
        "status": snapshot.status.name,
        "timeout_s": snapshot.timeout,
    }
    if snapshot.lock_id is not None:
        document["lock_id"] = str(snapshot.lock_id)
        age_s = cache.get_lock_age(snapshot.lock_id).total_seconds()
        document["lock_age_s"] = age_s
        document["lock_timeout_s"] = lock_timeout_s
        document["stale"] = age_s >= lock_timeout_s
    if snapshot.data is not None:
        document["data_bytes"] = len(snapshot.data)
        document["data_preview"] = snapshot.data[:64].decode("utf-8", errors="replace")
    _emit(document)
    return EXIT_OK


async def touch(
    shared: SharedConnection,
    session_id: str,
    application_name: str,
    session_timeout_s: int,
) -> int:
    """Push the record's expiry out by the session timeout; the lock is untouched."""
    cache = RedisCacheConnection(shared, session_id, application_name)
    result = await cache.update_expiry_time(session_timeout_s)
    if result.is_err():
        _emit({"ok": False, "error": result.error.to_dict()})
        return EXIT_STORE_ERROR
    _emit({"ok": True, "session_id": session_id, "timeout_s": session_timeout_s})
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m sessionstate",
        description="Inspect Redis-backed session state and its write lock.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("ping", help="check store connectivity")

    for name, help_text in (
        ("inspect", "show lock state and record of a session"),
        ("touch", "extend a session record by the configured session timeout"),
    ):
        session_parser = commands.add_parser(name, help=help_text)
        session_parser.add_argument("session_id")
        session_parser.add_argument(
            "--application",
            default=None,
            help="application name namespace (default: SESSIONSTATE_APPLICATION_NAME)",
        )
    return parser


async def main(argv: Optional[Sequence[str]] = None, shared: Optional[SharedConnection] = None) -> int:
    """
    Parse arguments, load configuration and run one command.

    Args:
        argv: Command line without the program name (default: sys.argv)
        shared: Pre-built connection holder; built from configuration
            when omitted.
    """
    args = build_parser().parse_args(argv)

    config_result = SessionStateConfig.from_env()
    if config_result.is_err():
        _emit({"ok": False, "error": config_result.error.to_dict()})
        return EXIT_CONFIG_ERROR
    config = config_result.unwrap()

    setup_logging(LogLevel.from_name(config.log_level), json_output=config.log_json)

    if shared is None:
        shared = shared_connection_for(config)

    try:
        if args.command == "ping":
            return await ping(shared)
        application_name = args.application or config.application_name
        if args.command == "touch":
            return await touch(shared, args.session_id, application_name, config.session_timeout_s)
        return await inspect(shared, args.session_id, application_name, config.lock_timeout_s)
    except SessionStateError as e:
        _emit({"ok": False, "error": e.to_dict()})
        return EXIT_STORE_ERROR
    finally:
        await shared.close()


def run() -> None:
    """Synchronous entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
