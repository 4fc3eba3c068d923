"""
AI feature endpoints.

POST /ai/client-message
POST /ai/quote-explain
POST /ai/insights
POST /ai/planning/suggest
POST /ai/quick-note/suggest
POST /ai/copilot
POST /ai/generate-quote-lines
POST /ai/quote-audit
POST /ai/quote-audit/apply

Handlers stay thin: identity comes from the headers, everything else is the
decision service. A failed generation or a spent quota is still HTTP 200 with
``{"fallback": true, "error": ...}`` so the front-end can switch to manual
mode.
"""
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from garage_ai.core.auth import RequestContext, get_request_context
from garage_ai.core.logging import get_logger
from garage_ai.models.responses import ApplyFixesResult, FallbackResponse, QuoteAuditResult
from garage_ai.models.usage import FeatureKey
from garage_ai.services.ai.service import DecisionService, GenerationOutcome, get_decision_service

logger = get_logger(__name__)

router = APIRouter()

# any JSON value; non-objects are rejected by parse_input after the gate
JsonBody = Any


def fallback_response(outcome: GenerationOutcome) -> JSONResponse:
    body = FallbackResponse(
        error=outcome.error,
        quota_exceeded=True if outcome.quota_exceeded else None,
    )
    return JSONResponse(
        status_code=200,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


def render(outcome: GenerationOutcome) -> JSONResponse:
    if not outcome.ok:
        return fallback_response(outcome)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder(outcome.data, by_alias=True),
    )


async def _generate(
    feature: FeatureKey,
    payload: JsonBody,
    ctx: RequestContext,
    service: DecisionService,
) -> JSONResponse:
    outcome = await service.generate(ctx, feature, payload)
    return render(outcome)


@router.post("/client-message")
async def client_message(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Draft an email + SMS for a customer from one of the message templates."""
    return await _generate(FeatureKey.CLIENT_MESSAGE, payload, ctx, service)


@router.post("/quote-explain")
async def quote_explain(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Customer-facing explanation of a quote (short, detailed, FAQ)."""
    return await _generate(FeatureKey.QUOTE_EXPLAIN, payload, ctx, service)


@router.post("/insights")
async def insights(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Up to three business recommendations from aggregate statistics."""
    return await _generate(FeatureKey.INSIGHTS, payload, ctx, service)


@router.post("/planning/suggest")
async def planning_suggest(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Recommended workshop slot for a quote, plus the resulting daily load."""
    return await _generate(FeatureKey.PLANNING_SUGGEST, payload, ctx, service)


@router.post("/quick-note/suggest")
async def quick_note_suggest(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Turn a quick note into quote lines or a task."""
    return await _generate(FeatureKey.QUICK_NOTE, payload, ctx, service)


@router.post("/copilot")
async def copilot(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Conversational assistant; suggested links are restricted to dashboard pages."""
    return await _generate(FeatureKey.COPILOT, payload, ctx, service)


@router.post("/generate-quote-lines")
async def generate_quote_lines(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Draft quote lines from a free-text description of the work.

    Lines are cleaned up (duplicates merged, included checks grouped) before
    they are returned; nothing is saved.
    """
    return await _generate(FeatureKey.GENERATE_QUOTE_LINES, payload, ctx, service)


@router.post("/quote-audit")
async def quote_audit(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Deterministic audit of quote lines.

    No model is called; findings are recomputed on every request.
    """
    outcome = await service.run_audit(ctx, payload)
    if not outcome.ok:
        return fallback_response(outcome)
    result = QuoteAuditResult(findings=outcome.data)
    return JSONResponse(status_code=200, content=jsonable_encoder(result, by_alias=True))


@router.post("/quote-audit/apply")
async def apply_quote_audit_fixes(
    payload: JsonBody = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    service: DecisionService = Depends(get_decision_service),
):
    """Apply one or more audit fixes to the editor's lines; nothing is saved."""
    lines = service.apply_fixes(ctx, payload)
    return jsonable_encoder(ApplyFixesResult(lines=lines), by_alias=True)
