"""
Unit tests for OpenTelemetry tracing.

Tests verify:
- Tracing configuration does not raise without an OTLP endpoint
- Each provider attempt opens its own span with provider/model attributes
- Failed attempts mark their span as an error
"""
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from conftest import DummyProvider
from garage_ai.core import tracing as tracing_module
from garage_ai.services.ai.orchestration import FallbackOrchestrator
from garage_ai.services.ai.schema import shape_validator


@pytest.fixture
def span_exporter(monkeypatch):
    provider = trace.get_tracer_provider()
    if not isinstance(provider, TracerProvider):
        tracing_module.configure_tracing()
        provider = trace.get_tracer_provider()
    exporter = InMemorySpanExporter()
    processor = SimpleSpanProcessor(exporter)
    provider.add_span_processor(processor)
    monkeypatch.setattr(tracing_module, "_tracer", provider.get_tracer("tests"))
    yield exporter
    exporter.clear()
    processor.shutdown()


def test_configure_tracing_without_endpoint(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

    tracing_module.configure_tracing(service_name="garageos_ai_core_test")

    assert tracing_module.get_tracer() is not None


def test_trace_id_from_context_outside_span():
    assert tracing_module.get_trace_id_from_context() is None


@pytest.mark.asyncio
async def test_provider_attempt_spans(span_exporter):
    providers = [
        DummyProvider("mistral", responses=["not json"]),
        DummyProvider("gemini", responses=[{"answer": "ok", "actions": []}]),
    ]

    outcome = await FallbackOrchestrator(timeout_ms=500, max_retries=0).run(
        providers, "s", "u", shape_validator("copilot")
    )

    assert outcome.ok
    spans = [s for s in span_exporter.get_finished_spans() if s.name == "ai.provider_attempt"]
    assert [s.attributes["ai.provider"] for s in spans] == ["mistral", "gemini"]
    assert spans[0].status.status_code is StatusCode.ERROR
    assert spans[1].status.status_code is not StatusCode.ERROR
    assert spans[1].attributes["ai.model"] == "dummy-model"
