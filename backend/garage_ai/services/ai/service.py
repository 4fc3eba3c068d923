"""
Decision service: the single request chain behind every AI feature.

Generation features:
    gate -> validate input -> build prompts -> fallback orchestrator
         -> usage/event recorder -> GenerationOutcome

Quote audit:
    gate -> validate input -> rules engine -> usage/event recorder

Hard denials (401/429/403) and invalid input (400) are raised; everything else
comes back as a GenerationOutcome whose ``error`` is always a user-safe
message.
"""
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from garage_ai.core.auth import RequestContext
from garage_ai.core.config import get_settings
from garage_ai.core.errors import (
    MSG_AUDIT_FAILED,
    MSG_FALLBACK,
    MSG_QUOTA_EXCEEDED,
    InvalidInputError,
    UnauthenticatedError,
)
from garage_ai.core.logging import get_logger
from garage_ai.core.metrics import record_audit_finding
from garage_ai.models.quote import QuoteLine
from garage_ai.models.requests import ApplyFixesRequest, QuoteAuditRequest
from garage_ai.models.usage import FeatureKey, UsageOutcome
from garage_ai.services.access.gate import AccessGate, get_access_gate, raise_for_denial
from garage_ai.services.ai.features import FeatureDefinition, get_feature
from garage_ai.services.ai.orchestration import FallbackOrchestrator
from garage_ai.services.ai.providers import ProviderAdapter, build_default_providers
from garage_ai.services.audit import apply_all_findings, audit
from garage_ai.services.usage.recorder import UsageRecorder, get_usage_recorder

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# decoded JSON body or an already-built input model
Payload = Any


@dataclass
class GenerationOutcome:
    """``data`` on success, otherwise a user-safe ``error``."""

    data: Any = None
    error: Optional[str] = None
    latency_ms: int = 0
    quota_exceeded: bool = False
    provider: Optional[str] = None
    model: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_input(model: Type[M], payload: Payload) -> M:
    """Validate a caller payload; any structural problem is a 400."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(payload if payload is not None else {})
    except ValidationError as exc:
        logger.info(
            "ai_invalid_input",
            model=model.__name__,
            error_count=exc.error_count(),
        )
        raise InvalidInputError(
            details=exc.errors(include_url=False, include_context=False, include_input=False)
        ) from exc


class DecisionService:
    def __init__(
        self,
        providers: Optional[Sequence[ProviderAdapter]] = None,
        gate: Optional[AccessGate] = None,
        recorder: Optional[UsageRecorder] = None,
        orchestrator: Optional[FallbackOrchestrator] = None,
    ):
        self._providers = list(providers) if providers is not None else None
        self._gate = gate
        self._recorder = recorder
        self._orchestrator = orchestrator

    @property
    def providers(self) -> List[ProviderAdapter]:
        if self._providers is None:
            self._providers = build_default_providers()
        return self._providers

    @property
    def gate(self) -> AccessGate:
        return self._gate or get_access_gate()

    @property
    def recorder(self) -> UsageRecorder:
        return self._recorder or get_usage_recorder()

    @property
    def orchestrator(self) -> FallbackOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = FallbackOrchestrator()
        return self._orchestrator

    async def _admit(self, ctx: RequestContext, feature: FeatureKey) -> Optional[GenerationOutcome]:
        """Run the gate; returns a soft-failure outcome when the quota is spent."""
        decision = await self.gate.check(ctx.tenant_id, feature)
        raise_for_denial(decision)
        if decision.quota_exceeded:
            return GenerationOutcome(error=MSG_QUOTA_EXCEEDED, quota_exceeded=True)
        return None

    async def generate(
        self,
        ctx: RequestContext,
        feature: FeatureKey,
        payload: Payload,
    ) -> GenerationOutcome:
        """
        Run one generation feature end to end.

        Raises:
            UnauthenticatedError / RateLimitedError / FeatureDisabledError
            InvalidInputError
        """
        definition: FeatureDefinition = get_feature(feature)

        denied = await self._admit(ctx, feature)
        if denied is not None:
            return denied

        request = parse_input(definition.input_model, payload)

        outcome = await self.orchestrator.run(
            self.providers,
            definition.system_prompt_for(request),
            definition.build_user_prompt(request),
            definition.validator(request),
            history=definition.history(request),
        )

        if not outcome.ok:
            logger.warning(
                "ai_generation_failed",
                feature=feature.value,
                failure=outcome.failure.value,
                provider_errors=outcome.provider_errors,
            )
            self.recorder.record(
                ctx.tenant_id,
                feature,
                UsageOutcome.ERROR,
                outcome.latency_ms,
                user_id=ctx.user_id,
                count_usage=outcome.attempted,
            )
            return GenerationOutcome(error=MSG_FALLBACK, latency_ms=outcome.latency_ms)

        data = definition.finalize(outcome.data, request)
        self.recorder.record(
            ctx.tenant_id,
            feature,
            UsageOutcome.SUCCESS,
            outcome.latency_ms,
            user_id=ctx.user_id,
            provider=outcome.provider,
            model=outcome.model,
        )
        return GenerationOutcome(
            data=data,
            latency_ms=outcome.latency_ms,
            provider=outcome.provider,
            model=outcome.model,
        )

    def _labor_rate(self, tenant_id: str, requested: Optional[float]) -> float:
        if requested is not None and requested > 0:
            return requested
        try:
            rate = self.gate.store.get_hourly_rate(tenant_id)
        except Exception as e:
            logger.warning(
                "ai_audit_hourly_rate_read_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            rate = None
        if rate is not None and rate > 0:
            return rate
        return get_settings().default_labor_rate

    async def run_audit(self, ctx: RequestContext, payload: Payload) -> GenerationOutcome:
        """Gate, then run the deterministic quote audit."""
        denied = await self._admit(ctx, FeatureKey.AUDIT)
        if denied is not None:
            return denied

        request = parse_input(QuoteAuditRequest, payload)
        labor_rate = self._labor_rate(ctx.tenant_id, request.hourlyRate)

        start = time.perf_counter()
        try:
            findings = audit(request.lines, labor_rate)
        except Exception as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                "ai_quote_audit_failed",
                quote_id=request.quoteId,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self.recorder.record(
                ctx.tenant_id,
                FeatureKey.AUDIT,
                UsageOutcome.ERROR,
                latency_ms,
                user_id=ctx.user_id,
                count_usage=False,
            )
            return GenerationOutcome(error=MSG_AUDIT_FAILED, latency_ms=latency_ms)

        latency_ms = int((time.perf_counter() - start) * 1000)
        for finding in findings:
            record_audit_finding(finding.severity)

        self.recorder.record(
            ctx.tenant_id,
            FeatureKey.AUDIT,
            UsageOutcome.SUCCESS,
            latency_ms,
            user_id=ctx.user_id,
        )
        logger.info(
            "ai_quote_audit_completed",
            quote_id=request.quoteId,
            finding_count=len(findings),
            labor_rate=labor_rate,
        )
        return GenerationOutcome(data=findings, latency_ms=latency_ms)

    def apply_fixes(self, ctx: RequestContext, payload: Payload) -> List[QuoteLine]:
        """Apply audit fixes to editor lines; authentication is the only gate."""
        if not ctx.authenticated:
            raise UnauthenticatedError()
        request = parse_input(ApplyFixesRequest, payload)
        return apply_all_findings(request.findings, request.lines)


_decision_service: Optional[DecisionService] = None


def get_decision_service() -> DecisionService:
    """Global singleton accessor for the decision service."""
    global _decision_service
    if _decision_service is None:
        _decision_service = DecisionService()
    return _decision_service


def set_decision_service(service: Optional[DecisionService]) -> None:
    global _decision_service
    _decision_service = service
