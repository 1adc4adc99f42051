import io
import json
import logging

import structlog

from companion.logging import _redact_event, bind_conversation, get_logger, setup_logging


def test_json_logs_carry_conversation_and_redact_keys() -> None:
    stream = io.StringIO()
    setup_logging(json_output=True, level="DEBUG", stream=stream)
    bind_conversation("conv-42", turn="t1")

    get_logger("companion.test").info("llm_call_failed", error="bad key sk-abc123456789xyzABCDEF")

    line = stream.getvalue().strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["event"] == "llm_call_failed"
    assert payload["conversation_id"] == "conv-42"
    assert payload["turn"] == "t1"
    assert payload["logger"] == "companion.test"
    assert "sk-abc123456789xyzABCDEF" not in payload["error"]
    structlog.contextvars.clear_contextvars()


def test_bind_conversation_replaces_previous_context() -> None:
    bind_conversation("a", turn="1")
    bind_conversation("b")
    assert structlog.contextvars.get_contextvars() == {"conversation_id": "b"}
    structlog.contextvars.clear_contextvars()


def test_setup_logging_sets_level() -> None:
    setup_logging(json_output=False, level="warning")
    assert logging.getLogger("companion").level == logging.WARNING


def test_nested_values_are_redacted() -> None:
    event = {"event": "x", "headers": {"Authorization": "Bearer abcdefghijklmnop"}, "keys": ["gsk_1234567890abc"]}
    result = _redact_event(None, "info", event)
    assert "abcdefghijklmnop" not in result["headers"]["Authorization"]
    assert "gsk_1234567890abc" not in result["keys"][0]
