"""
Fallback orchestrator for text generation.

Responsibilities:
- Skip providers without a usable credential (no network call)
- Try every configured provider in order, and each of its model variants in
  order, through the resilience wrapper
- Extract JSON from the raw text and validate it against the requested shape
- Return the first validated result, or an aggregated failure

NON-responsibilities:
- Does NOT gate access or record usage (see services.access / services.usage)
- Does NOT build prompts

Providers are strictly sequential: a later provider is never called while an
earlier one is still in flight.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from garage_ai.core.config import get_settings
from garage_ai.core.logging import get_logger
from garage_ai.core.metrics import record_provider_attempt, record_schema_rejection
from garage_ai.core.tracing import StatusCode, start_span
from garage_ai.services.ai.extraction import ExtractionError, extract_json
from garage_ai.services.ai.providers import ChatMessage, ProviderAdapter
from garage_ai.services.ai.resilience import safe_call
from garage_ai.services.ai.schema import ValidationResult

logger = get_logger(__name__)

Validator = Callable[[Any], ValidationResult]


class OrchestratorFailure(str, Enum):
    NO_PROVIDER_CONFIGURED = "no_provider_configured"
    ALL_PROVIDERS_FAILED = "all_providers_failed"


@dataclass
class OrchestratorOutcome:
    """
    Result of one orchestrated generation.

    ``provider_errors`` holds provider-attributed messages such as
    ``"Mistral: invalid response"``; they are meant for operators and logs,
    never for end users.
    """

    data: Any = None
    provider: Optional[str] = None
    model: Optional[str] = None
    failure: Optional[OrchestratorFailure] = None
    provider_errors: List[str] = field(default_factory=list)
    latency_ms: int = 0
    attempted: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None


class FallbackOrchestrator:
    """Runs one prompt across an ordered list of providers."""

    def __init__(self, timeout_ms: Optional[int] = None, max_retries: Optional[int] = None):
        settings = get_settings()
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.ai_timeout_ms
        self.max_retries = max_retries if max_retries is not None else settings.ai_max_retries

    async def _attempt(
        self,
        provider: ProviderAdapter,
        model: str,
        system_prompt: str,
        user_prompt: str,
        validate: Validator,
        history: Optional[Sequence[ChatMessage]],
    ) -> ValidationResult:
        """
        One provider/model attempt. Returns a successful ValidationResult or
        one whose ``error`` is the provider-attributed failure.
        """
        with start_span("ai.provider_attempt", **{"ai.provider": provider.name, "ai.model": model}) as span:
            call = await safe_call(
                lambda: provider.generate(system_prompt, user_prompt, model, history=history),
                timeout_ms=self.timeout_ms,
                max_retries=self.max_retries,
                label=f"{provider.name}/{model}",
            )
            span.set_attribute("ai.latency_ms", call.latency_ms)

            if not call.ok:
                record_provider_attempt(provider.name, model, call.category.value)
                span.set_status(StatusCode.ERROR, call.category.value)
                logger.warning(
                    "ai_provider_attempt_failed",
                    provider=provider.name,
                    model=model,
                    category=call.category.value,
                    raw_error=call.raw_error,
                    latency_ms=call.latency_ms,
                )
                return ValidationResult(
                    ok=False, error=f"{provider.display_name}: {call.error}"
                )

            try:
                payload = extract_json(call.data)
            except ExtractionError as exc:
                record_provider_attempt(provider.name, model, "invalid_json")
                span.set_status(StatusCode.ERROR, "invalid_json")
                logger.warning(
                    "ai_provider_invalid_json",
                    provider=provider.name,
                    model=model,
                    error=str(exc),
                )
                return ValidationResult(
                    ok=False, error=f"{provider.display_name}: invalid response"
                )

            result = validate(payload)
            if not result.ok:
                shape = getattr(validate, "shape_name", "unknown")
                record_provider_attempt(provider.name, model, "schema_rejected")
                record_schema_rejection(shape, provider.name)
                span.set_status(StatusCode.ERROR, "schema_rejected")
                logger.warning(
                    "ai_provider_schema_rejected",
                    provider=provider.name,
                    model=model,
                    shape=shape,
                    error=result.error,
                )
                return ValidationResult(
                    ok=False, error=f"{provider.display_name}: invalid response"
                )

            record_provider_attempt(provider.name, model, "success")
            return result

    async def run(
        self,
        providers: Sequence[ProviderAdapter],
        system_prompt: str,
        user_prompt: str,
        validate: Validator,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> OrchestratorOutcome:
        """
        Generate and validate, falling back across providers and models.

        Args:
            providers: Adapters in preference order
            system_prompt: Instructions for the model
            user_prompt: Feature-specific context
            validate: Callable returning a ValidationResult for a decoded payload
            history: Optional prior chat turns (copilot)

        Returns:
            OrchestratorOutcome with data on success, otherwise a failure kind
            and the provider-attributed errors.
        """
        start = time.perf_counter()
        configured = [p for p in providers if p.is_configured()]

        if not configured:
            logger.warning(
                "ai_no_provider_configured",
                providers=[p.name for p in providers],
            )
            return OrchestratorOutcome(failure=OrchestratorFailure.NO_PROVIDER_CONFIGURED)

        errors: List[str] = []
        for provider in configured:
            for model in provider.models:
                result = await self._attempt(
                    provider, model, system_prompt, user_prompt, validate, history
                )
                if result.ok:
                    latency_ms = int((time.perf_counter() - start) * 1000)
                    logger.info(
                        "ai_generation_succeeded",
                        provider=provider.name,
                        model=model,
                        latency_ms=latency_ms,
                        failed_attempts=len(errors),
                    )
                    return OrchestratorOutcome(
                        data=result.data,
                        provider=provider.name,
                        model=model,
                        provider_errors=errors,
                        latency_ms=latency_ms,
                        attempted=True,
                    )
                errors.append(result.error)

        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.warning(
            "ai_all_providers_failed",
            provider_errors=errors,
            latency_ms=latency_ms,
        )
        return OrchestratorOutcome(
            failure=OrchestratorFailure.ALL_PROVIDERS_FAILED,
            provider_errors=errors,
            latency_ms=latency_ms,
            attempted=True,
        )
