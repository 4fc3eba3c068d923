"""
Integration tests for trace ID propagation and request-scoped log context.
"""
import json
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import DummyProvider
from garage_ai.core.errors import MSG_UNAUTHENTICATED
from garage_ai.core.logging import (
    add_request_context,
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
    get_trace_id,
    tenant_id_var,
    user_id_var,
)
from garage_ai.main import app


@pytest.fixture
def client():
    return TestClient(app)


class TestTraceIDPropagation:
    """Trace and request IDs on every response."""

    def test_trace_id_generated_when_missing(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert len(response.headers["X-Trace-ID"]) == 36
        assert response.headers["X-Request-ID"]

    def test_trace_id_taken_from_header(self, client):
        response = client.get("/health", headers={"X-Trace-ID": "trace-abc"})

        assert response.headers["X-Trace-ID"] == "trace-abc"

    def test_request_id_header_used_as_trace_fallback(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Trace-ID"] == "req-123"
        assert response.headers["X-Request-ID"] != "req-123"

    def test_error_body_carries_trace_id(self, client, install_providers):
        install_providers()

        response = client.post("/ai/copilot", json={"message": "x"}, headers={"X-Trace-ID": "trace-err"})

        assert response.status_code == 401
        assert response.json() == {
            "detail": MSG_UNAUTHENTICATED,
            "status_code": 401,
            "trace_id": "trace-err",
        }

    def test_context_cleared_after_request(self, client):
        client.get("/health", headers={"X-Trace-ID": "trace-abc", "X-Garage-ID": "g"})

        assert get_trace_id() is None
        assert tenant_id_var.get() is None

    def test_identity_reaches_handler_log_context(self, client, install_providers):
        seen = {}

        class ContextCapturingProvider(DummyProvider):
            async def generate(self, system_prompt, user_prompt, model, history=None):
                seen["tenant_id"] = tenant_id_var.get()
                seen["user_id"] = user_id_var.get()
                return await super().generate(system_prompt, user_prompt, model, history=history)

        install_providers(ContextCapturingProvider("mistral", responses=[{"answer": "ok", "actions": []}]))

        response = client.post(
            "/ai/copilot",
            json={"message": "x"},
            headers={"X-Garage-ID": "garage-7", "X-User-ID": "user-3"},
        )

        assert response.status_code == 200
        assert seen == {"tenant_id": "garage-7", "user_id": "user-3"}


class TestLogContext:
    """Request-scoped fields on structured log entries."""

    def test_add_request_context(self):
        bind_request_context(trace_id="t-1", tenant_id="garage-9", user_id=None)
        try:
            event = add_request_context(None, "info", {"event": "x"})
        finally:
            clear_request_context()

        assert event["trace_id"] == "t-1"
        assert event["tenant_id"] == "garage-9"
        assert "user_id" not in event
        assert event["service"] == "garageos_ai_core"
        assert "timestamp" in event

    def test_explicit_fields_are_not_overwritten(self):
        bind_request_context(trace_id="from-context")
        try:
            event = add_request_context(None, "info", {"event": "x", "trace_id": "explicit"})
        finally:
            clear_request_context()

        assert event["trace_id"] == "explicit"

    def test_json_output(self, capsys):
        configure_logging(log_level="INFO", json_output=True)
        # handlers created by basicConfig keep the stdout captured at first configuration
        stream_handler = logging.StreamHandler()
        root = logging.getLogger()
        root.addHandler(stream_handler)
        try:
            get_logger("garage_ai.test").info("ai_usage_recorded", feature="copilot")
        finally:
            root.removeHandler(stream_handler)

        line = [l for l in capsys.readouterr().err.splitlines() if "ai_usage_recorded" in l][-1]
        payload = json.loads(line)
        assert payload["event"] == "ai_usage_recorded"
        assert payload["feature"] == "copilot"
        assert payload["level"] == "info"
