"""Tests for the tracing helpers with tracing switched off."""

import pytest

from livevote import telemetry


class TestTraceSpan:
    """trace_span without an exporter configured."""

    def test_noop_span_accepts_attributes(self):
        with telemetry.trace_span("aggregate.refresh", "g1", session_id=3) as span:
            span.set_attributes({"count": 2})

    def test_exceptions_propagate(self):
        with pytest.raises(RuntimeError):
            with telemetry.trace_span("reveal", "g1"):
                raise RuntimeError("refresh failed")

    def test_setup_without_endpoint_is_disabled(self, monkeypatch):
        monkeypatch.setattr(telemetry, "OTEL_EXPORTER_OTLP_ENDPOINT", None)
        assert telemetry.setup_telemetry() is False


class TestPrefixedAttributes:
    """Attribute keys are namespaced under livevote."""

    def test_prefix_added_once(self):
        assert telemetry._prefixed({"count": 2, "livevote.group_id": "g1"}) == {
            "livevote.count": 2,
            "livevote.group_id": "g1",
        }

    def test_none_values_dropped(self):
        assert telemetry._prefixed({"session_id": None}) == {}
