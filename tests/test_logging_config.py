"""Tests for context-aware log formatting."""

import json
import logging

import pytest

from livevote.logging_config import (
    ContextAwareFormatter,
    ContextAwareJsonFormatter,
    get_log_context,
    log_context,
    set_active_group,
    set_correlation_id,
)


def make_record(message: str = "Revealed aggregate") -> logging.LogRecord:
    return logging.LogRecord("livevote.sequencer", logging.INFO, __file__, 1, message, (), None)


@pytest.fixture(autouse=True)
def clear_context():
    yield
    set_correlation_id(None)
    set_active_group(None)


class TestContextAwareFormatter:
    """Tests for the human-readable formatter."""

    def test_prefixes_correlation_and_group(self):
        set_correlation_id("0123456789abcdef")
        set_active_group("g1")

        output = ContextAwareFormatter("%(message)s").format(make_record())

        assert output == "[01234567] [group:g1] Revealed aggregate"

    def test_no_context_no_prefix(self):
        assert ContextAwareFormatter("%(message)s").format(make_record()) == "Revealed aggregate"


class TestContextAwareJsonFormatter:
    """Tests for the JSON formatter."""

    def test_includes_group_id(self):
        set_active_group("g1")

        output = ContextAwareJsonFormatter("%(message)s").format(make_record())

        payload = json.loads(output)
        assert payload["group_id"] == "g1"
        assert payload["message"] == "Revealed aggregate"
        assert "correlation_id" not in payload


class TestLogContext:
    """Tests for binding log context."""

    def test_block_scoped_session(self):
        set_active_group("g1")

        with log_context(session_id=4):
            inside = ContextAwareFormatter("%(message)s").format(make_record())

        outside = ContextAwareFormatter("%(message)s").format(make_record())
        assert inside == "[group:g1] [reveal:4] Revealed aggregate"
        assert outside == "[group:g1] Revealed aggregate"

    def test_none_unbinds(self):
        set_active_group("g1")
        set_active_group(None)
        assert get_log_context() == {}

    def test_message_args_formatted_once(self):
        set_active_group("g1")
        record = logging.LogRecord(
            "livevote.live", logging.INFO, __file__, 1, "Activated group. GroupId: %s", ("g1",), None
        )

        output = ContextAwareFormatter("%(message)s").format(record)

        assert output == "[group:g1] Activated group. GroupId: g1"
        assert record.args == ("g1",)
