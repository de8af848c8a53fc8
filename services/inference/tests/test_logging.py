"""Tests for the shared logging helpers."""

import io
import json
import logging

from common.logging import configure_logging, get_request_id, reset_request_id, set_request_id


def test_json_records_carry_request_id() -> None:
    """JSON log records include the current request id."""
    stream = io.StringIO()
    configure_logging("INFO", json_logs=True, stream=stream)
    token = set_request_id("req-1")
    try:
        logging.getLogger("app.test").info("hello %s", "world")
    finally:
        reset_request_id(token)

    record = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert record["message"] == "hello world"
    assert record["request_id"] == "req-1"
    assert record["level"] == "INFO"
    assert get_request_id() == "-"


def test_text_format_and_level() -> None:
    """Text logs use the shared format and honour the level."""
    stream = io.StringIO()
    configure_logging("warning", stream=stream)
    log = logging.getLogger("app.test")
    log.info("hidden")
    log.warning("shown")
    out = stream.getvalue()
    assert "hidden" not in out
    assert "WARNING - app.test - [-] shown" in out


def test_reconfiguring_does_not_duplicate_handlers() -> None:
    """Configuring twice leaves a single root handler."""
    configure_logging("INFO")
    configure_logging("INFO")
    assert len(logging.getLogger().handlers) == 1
