"""
Integration tests for health check endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import DummyProvider
from garage_ai.main import app


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "API is running"}


def test_providers_health_degraded_without_credentials(client, memory_store):
    response = client.get("/health/providers")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["configured"] == []
    assert body["order"] == ["mistral", "gemini", "openai"]
    assert body["timeout_ms"] == 1000


def test_providers_health_reports_configured(client, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "AIza-test")
    monkeypatch.setenv("OPENAI_API_KEY", "not-an-openai-key")
    from garage_ai.core.config import reset_settings

    reset_settings()
    body = client.get("/health/providers").json()

    assert body["status"] == "ok"
    assert body["configured"] == ["gemini"]


def test_providers_health_uses_installed_service(client, install_providers):
    install_providers(DummyProvider("stub"))

    body = client.get("/health/providers").json()

    assert body["order"] == ["stub"]
    assert body["configured"] == ["stub"]
