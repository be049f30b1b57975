"""Optional OpenTelemetry tracing for the live vote board.

Spans cover the work a vote triggers: the aggregate refresh and the reveal
that follows it. Every span carries the ``livevote.group_id`` attribute.

Tracing turns on only when OTEL_EXPORTER_OTLP_ENDPOINT is set and the
``telemetry`` extra is installed. Otherwise every span is a no-op.
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .version import __version__

logger = logging.getLogger(__name__)

OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "livevote")

ATTRIBUTE_PREFIX = "livevote."

_tracer: Any = None


def setup_telemetry() -> bool:
    """Install an OTLP tracer provider.

    Returns:
        True if spans will be exported, False if tracing stays off.
    """
    global _tracer

    if not OTEL_EXPORTER_OTLP_ENDPOINT:
        logger.info("Tracing disabled: OTEL_EXPORTER_OTLP_ENDPOINT not configured")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as e:
        logger.warning("Tracing disabled, install the telemetry extra: %s", e)
        return False

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": OTEL_SERVICE_NAME, "service.version": __version__}
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT))
    )
    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("livevote")

    logger.info(
        "Tracing enabled. Endpoint: %s, Service: %s",
        OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_SERVICE_NAME,
    )
    return True


def instrument_fastapi(app: Any) -> None:
    """Add request spans to the API when tracing is on."""
    if _tracer is None:
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        logger.warning("FastAPI instrumentation package not available")
        return

    FastAPIInstrumentor.instrument_app(app)
    logger.info("FastAPI instrumentation enabled")


class _NoOpSpan:
    """Stands in for a span when tracing is off."""

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        pass


def _prefixed(attributes: dict[str, Any]) -> dict[str, Any]:
    return {
        key if key.startswith(ATTRIBUTE_PREFIX) else ATTRIBUTE_PREFIX + key: value
        for key, value in attributes.items()
        if value is not None
    }


class BoardSpan:
    """Span wrapper that namespaces attribute keys under ``livevote.``."""

    def __init__(self, span: Any) -> None:
        self._span = span

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        self._span.set_attributes(_prefixed(attributes))


@contextmanager
def trace_span(name: str, group_id: str, **attributes: Any) -> Iterator[BoardSpan]:
    """Trace a unit of board work for one group.

    Exceptions raised inside the block are recorded on the span and re-raised.

    Args:
        name: Span name, e.g. ``aggregate.refresh``
        group_id: Group the work belongs to
        **attributes: Extra attributes, stored under the ``livevote.`` prefix

    Yields:
        A BoardSpan for adding attributes as results come in
    """
    if _tracer is None:
        yield BoardSpan(_NoOpSpan())
        return

    from opentelemetry.trace import Status, StatusCode

    with _tracer.start_as_current_span(name) as span:
        board_span = BoardSpan(span)
        board_span.set_attributes({"group_id": group_id, **attributes})
        try:
            yield board_span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
