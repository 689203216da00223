"""
Structured Logging Tests

Run: python -m pytest sessionstate/tests/test_logging.py -v
"""

from __future__ import annotations

import io
import json
import logging

import pytest

from sessionstate.observability.logging import (
    JsonFormatter,
    LogLevel,
    StructuredLogger,
)


@pytest.fixture
def captured():
    """JSON-formatted handler on a dedicated logger."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    target = logging.getLogger("sessionstate.test")
    target.addHandler(handler)
    target.setLevel(logging.DEBUG)
    yield stream
    target.removeHandler(handler)


def _records(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_json_line_with_extra_fields(captured):
    StructuredLogger("sessionstate.test").info("Lock acquired", lock_id="123:abc")

    (record,) = _records(captured)
    assert record["message"] == "Lock acquired"
    assert record["level"] == "INFO"
    assert record["logger"] == "sessionstate.test"
    assert record["lock_id"] == "123:abc"
    assert "@timestamp" in record


def test_context_fields_are_scoped(captured):
    log = StructuredLogger("sessionstate.test")

    with log.context(session_id="s-1"):
        log.warning("inside")
    log.warning("outside")

    inside, outside = _records(captured)
    assert inside["session_id"] == "s-1"
    assert "session_id" not in outside


def test_with_extra_sets_default_fields(captured):
    log = StructuredLogger("sessionstate.test").with_extra(session_id="s-2")

    log.error("failed", operation="set")

    (record,) = _records(captured)
    assert record["session_id"] == "s-2"
    assert record["operation"] == "set"


def test_level_filtering(captured):
    logging.getLogger("sessionstate.test").setLevel(logging.WARNING)

    StructuredLogger("sessionstate.test").debug("hidden")

    assert _records(captured) == []


def test_log_level_from_name():
    assert LogLevel.from_name(" warning ") is LogLevel.WARNING
    with pytest.raises(KeyError):
        LogLevel.from_name("loud")


def test_payload_bytes_are_redacted(captured):
    StructuredLogger("sessionstate.test").info("Record written", data=b"secret-cart")

    (record,) = _records(captured)
    assert record["data"] == "<11 bytes>"
