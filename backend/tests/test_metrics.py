"""
Unit tests for Prometheus metrics collection.

Tests verify:
- RED metrics are recorded per normalized endpoint
- AI metrics (feature outcomes, provider attempts, gate denials) are incremented
- The /metrics endpoint returns Prometheus text format
"""
import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from conftest import DummyProvider
from garage_ai.core.metrics import (
    get_metrics,
    get_metrics_content_type,
    normalize_endpoint,
    record_ai_request,
    record_audit_finding,
    record_gate_denial,
    record_provider_attempt,
)
from garage_ai.main import app


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/ai/client-message", "/ai/client-message"),
        ("/ai/copilot?debug=1", "/ai/copilot"),
        ("/admin/garages/abc-123/usage", "/admin/garages/{garage_id}/usage"),
        ("/admin/garages/abc-123/feature-flags/ai_copilot", "/admin/garages/{garage_id}/feature-flags/ai_copilot"),
        ("/health", "/health"),
    ],
)
def test_normalize_endpoint(path, expected):
    assert normalize_endpoint(path) == expected


def test_record_ai_request_counter():
    labels = {"feature": "insights", "outcome": "success"}
    before = _sample("ai_requests_total", labels)

    record_ai_request("insights", "success", 250)

    assert _sample("ai_requests_total", labels) == before + 1


def test_record_provider_attempt_counter():
    labels = {"provider": "gemini", "model": "gemini-pro", "outcome": "timeout"}
    before = _sample("ai_provider_attempts_total", labels)

    record_provider_attempt("gemini", "gemini-pro", "timeout")

    assert _sample("ai_provider_attempts_total", labels) == before + 1


def test_record_gate_denial_and_audit_finding():
    denial = {"feature": "copilot", "reason": "rate_limited"}
    finding = {"severity": "info"}
    denial_before = _sample("ai_gate_denials_total", denial)
    finding_before = _sample("audit_findings_total", finding)

    record_gate_denial("copilot", "rate_limited")
    record_audit_finding("info")

    assert _sample("ai_gate_denials_total", denial) == denial_before + 1
    assert _sample("audit_findings_total", finding) == finding_before + 1


def test_get_metrics_format():
    output = get_metrics().decode("utf-8")

    assert "# HELP ai_requests_total" in output
    assert "# TYPE system_cpu_usage_percent gauge" in output
    assert get_metrics_content_type().startswith("text/plain")


def test_metrics_endpoint(install_providers):
    install_providers(DummyProvider("mistral", responses=[{"kind": "task", "title": "Rappeler"}]))
    client = TestClient(app)
    client.post("/ai/quick-note/suggest", json={"note": "rappel"}, headers={"X-Garage-ID": "g"})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    body = response.text
    assert 'ai_requests_total{feature="quick_note",outcome="success"}' in body
    assert 'ai_provider_attempts_total{provider="mistral",model="dummy-model",outcome="success"}' in body
    assert 'http_requests_total{method="POST",endpoint="/ai/quick-note/suggest",status="200"}' in body
