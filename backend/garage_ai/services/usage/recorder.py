"""
Usage and event recording.

For every gated AI request that got past the gate:
- the garage's monthly counter is incremented when the request consumed
  provider capacity (or ran the audit)
- one row is appended to ai_events, success or error

Recording never fails the request: storage errors are logged and counted.
"""
from typing import Optional

from garage_ai.core.logging import get_logger
from garage_ai.core.metrics import record_ai_request, record_recorder_failure
from garage_ai.models.usage import FeatureKey, UsageEvent, UsageOutcome, current_period
from garage_ai.services.store import AIStore, get_store

logger = get_logger(__name__)


class UsageRecorder:
    def __init__(self, store: Optional[AIStore] = None):
        self._store = store

    @property
    def store(self) -> AIStore:
        return self._store or get_store()

    def _increment(self, tenant_id: str, feature: FeatureKey) -> Optional[int]:
        try:
            return self.store.increment_usage(tenant_id, current_period())
        except Exception as e:
            record_recorder_failure("usage")
            logger.error(
                "ai_usage_increment_failed",
                feature=feature.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

    def _append_event(self, event: UsageEvent) -> None:
        try:
            self.store.insert_event(event)
        except Exception as e:
            record_recorder_failure("event")
            logger.error(
                "ai_event_insert_failed",
                feature=event.feature.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def record(
        self,
        tenant_id: str,
        feature: FeatureKey,
        outcome: UsageOutcome,
        latency_ms: int,
        user_id: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        count_usage: bool = True,
    ) -> None:
        """
        Record one AI request.

        Args:
            tenant_id: Garage the request belongs to
            feature: Feature that was invoked
            outcome: success or error
            latency_ms: Wall-clock time spent generating (or auditing)
            user_id: Optional acting user
            provider/model: Integration that answered, when one did
            count_usage: Increment the monthly counter
        """
        latency_ms = max(0, int(latency_ms))
        new_count = self._increment(tenant_id, feature) if count_usage else None

        self._append_event(
            UsageEvent(
                garage_id=tenant_id,
                user_id=user_id,
                feature=feature,
                status=outcome,
                latency_ms=latency_ms,
                provider=provider,
                model=model,
            )
        )

        record_ai_request(feature.value, outcome.value, latency_ms)
        logger.info(
            "ai_usage_recorded",
            feature=feature.value,
            outcome=outcome.value,
            latency_ms=latency_ms,
            provider=provider,
            model=model,
            usage_count=new_count,
        )


_usage_recorder: Optional[UsageRecorder] = None


def get_usage_recorder() -> UsageRecorder:
    global _usage_recorder
    if _usage_recorder is None:
        _usage_recorder = UsageRecorder()
    return _usage_recorder
