"""
Unit tests for the decision service request chain (no HTTP layer).
"""
import pytest

from conftest import DummyProvider
from garage_ai.core.auth import RequestContext
from garage_ai.core.errors import (
    MSG_AUDIT_FAILED,
    MSG_FALLBACK,
    InvalidInputError,
    RateLimitedError,
    UnauthenticatedError,
)
from garage_ai.core.rate_limit import InMemoryRateLimiter
from garage_ai.models.requests import QuickNoteRequest
from garage_ai.models.usage import FeatureKey, UsageOutcome, current_period
from garage_ai.services.access import AccessGate
from garage_ai.services.ai import service as service_module
from garage_ai.services.ai.orchestration import FallbackOrchestrator
from garage_ai.services.ai.service import DecisionService, parse_input
from garage_ai.services.store import InMemoryAIStore
from garage_ai.services.usage import UsageRecorder

CTX = RequestContext(tenant_id="garage-1", user_id="user-1")


def _service(*providers, store=None, limit=10):
    store = store or InMemoryAIStore()
    return DecisionService(
        providers=list(providers),
        gate=AccessGate(store=store, rate_limiter=InMemoryRateLimiter(limit=limit)),
        recorder=UsageRecorder(store),
        orchestrator=FallbackOrchestrator(timeout_ms=500, max_retries=0),
    ), store


@pytest.mark.asyncio
async def test_generate_success_records_provider_and_model():
    service, store = _service(DummyProvider("gemini", responses=[{"kind": "task", "title": "Commander pièce"}]))

    outcome = await service.generate(CTX, FeatureKey.QUICK_NOTE, {"note": "commander la pièce"})

    assert outcome.ok
    assert outcome.data.title == "Commander pièce"
    assert outcome.provider == "gemini"
    event = store.events[0]
    assert (event.provider, event.model, event.status) == ("gemini", "dummy-model", UsageOutcome.SUCCESS)


@pytest.mark.asyncio
async def test_generate_failure_uses_generic_message():
    service, store = _service(DummyProvider("mistral", responses=["nope"]))

    outcome = await service.generate(CTX, FeatureKey.QUICK_NOTE, {"note": "x"})

    assert outcome.error == MSG_FALLBACK
    assert not outcome.quota_exceeded
    assert store.get_usage_count("garage-1", current_period()) == 1


@pytest.mark.asyncio
async def test_unauthenticated_context_raises():
    service, _ = _service()

    with pytest.raises(UnauthenticatedError):
        await service.generate(RequestContext(), FeatureKey.COPILOT, {"message": "x"})


@pytest.mark.asyncio
async def test_rate_limit_consumed_before_input_validation():
    service, _ = _service(limit=1)

    with pytest.raises(InvalidInputError):
        await service.generate(CTX, FeatureKey.COPILOT, {})
    with pytest.raises(RateLimitedError):
        await service.generate(CTX, FeatureKey.COPILOT, {"message": "x"})


@pytest.mark.asyncio
async def test_invalid_input_records_nothing():
    service, store = _service(DummyProvider("mistral", responses=[{"answer": "a", "actions": []}]))

    with pytest.raises(InvalidInputError) as exc_info:
        await service.generate(CTX, FeatureKey.COPILOT, {"message": ""})

    assert exc_info.value.details
    assert store.events == []


def test_parse_input_accepts_model_instance():
    request = QuickNoteRequest(note="x")

    assert parse_input(QuickNoteRequest, request) is request


@pytest.mark.asyncio
async def test_audit_falls_back_to_default_labor_rate():
    service, _ = _service()

    outcome = await service.run_audit(
        CTX, {"quoteId": "q", "lines": [{"description": "Oil filter", "type": "part"}]}
    )

    line = outcome.data[0].proposed_fix.payload.line
    assert line.unit_price == 60


@pytest.mark.asyncio
async def test_audit_exception_is_reported_without_usage(monkeypatch):
    def broken_audit(lines, labor_rate):
        raise RuntimeError("rule crashed")

    monkeypatch.setattr(service_module, "audit", broken_audit)
    service, store = _service()

    outcome = await service.run_audit(CTX, {"quoteId": "q", "lines": []})

    assert outcome.error == MSG_AUDIT_FAILED
    assert store.get_usage_count("garage-1", current_period()) == 0
    assert store.events[0].status is UsageOutcome.ERROR
    assert store.events[0].feature is FeatureKey.AUDIT


@pytest.mark.asyncio
async def test_audit_quota_exceeded_is_soft():
    store = InMemoryAIStore()
    store.set_monthly_quota("garage-1", 0)
    service, _ = _service(store=store)

    outcome = await service.run_audit(CTX, {"quoteId": "q", "lines": []})

    assert outcome.quota_exceeded
    assert store.events == []


def test_apply_fixes_requires_authentication():
    service, _ = _service()

    with pytest.raises(UnauthenticatedError):
        service.apply_fixes(RequestContext(), {"lines": [], "findings": []})
