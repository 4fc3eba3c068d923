"""
Access gate for AI features.

Checks run in a fixed order and stop at the first failure:

1. authenticated     -> Unauthenticated (401)
2. rate limit        -> RateLimited (429); a passing check consumes one slot
3. feature flag      -> FeatureDisabled (403); enabled unless a row says false
4. monthly quota     -> QuotaExceeded, rendered as a soft failure (HTTP 200)

Apart from the rate-limit slot, the gate only reads state. Storage errors on
the flag and quota reads are logged and treated as "allowed".
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from garage_ai.core.errors import (
    FeatureDisabledError,
    RateLimitedError,
    UnauthenticatedError,
)
from garage_ai.core.logging import get_logger
from garage_ai.core.metrics import record_gate_denial
from garage_ai.core.rate_limit import RateLimiter, get_rate_limiter
from garage_ai.models.usage import FEATURE_FLAG_KEYS, FeatureKey, current_period
from garage_ai.services.store import AIStore, get_store

logger = get_logger(__name__)


class DenialReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    FEATURE_DISABLED = "feature_disabled"
    QUOTA_EXCEEDED = "quota_exceeded"


@dataclass
class GateDecision:
    allowed: bool
    reason: Optional[DenialReason] = None

    @property
    def quota_exceeded(self) -> bool:
        return self.reason is DenialReason.QUOTA_EXCEEDED


ALLOWED = GateDecision(allowed=True)


class AccessGate:
    def __init__(
        self,
        store: Optional[AIStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self._store = store
        self._rate_limiter = rate_limiter

    @property
    def store(self) -> AIStore:
        return self._store or get_store()

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter or get_rate_limiter()

    def _deny(self, feature: FeatureKey, reason: DenialReason, **log_fields) -> GateDecision:
        record_gate_denial(feature.value, reason.value)
        logger.info("ai_gate_denied", feature=feature.value, reason=reason.value, **log_fields)
        return GateDecision(allowed=False, reason=reason)

    def _feature_enabled(self, tenant_id: str, feature: FeatureKey) -> bool:
        flag_key = FEATURE_FLAG_KEYS[feature]
        try:
            enabled = self.store.get_feature_flag(tenant_id, flag_key)
        except Exception as e:
            logger.warning(
                "ai_gate_flag_read_failed",
                feature_key=flag_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return True
        return enabled is not False

    def _within_quota(self, tenant_id: str) -> bool:
        try:
            quota = self.store.get_monthly_quota(tenant_id)
            if quota is None:
                return True
            used = self.store.get_usage_count(tenant_id, current_period())
        except Exception as e:
            logger.warning(
                "ai_gate_quota_read_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return True
        return used < quota

    async def check(self, tenant_id: Optional[str], feature: FeatureKey) -> GateDecision:
        """Run every check in order; the first failure wins."""
        if not tenant_id:
            return self._deny(feature, DenialReason.UNAUTHENTICATED)

        rate = await self.rate_limiter.hit(tenant_id)
        if not rate.allowed:
            return self._deny(feature, DenialReason.RATE_LIMITED, reset_at=rate.reset_at)

        if not self._feature_enabled(tenant_id, feature):
            return self._deny(feature, DenialReason.FEATURE_DISABLED)

        if not self._within_quota(tenant_id):
            return self._deny(feature, DenialReason.QUOTA_EXCEEDED)

        return ALLOWED


def raise_for_denial(decision: GateDecision) -> None:
    """
    Raise the HTTP-mapped error for a hard denial.

    Quota exhaustion is a soft failure and is left to the caller.
    """
    if decision.allowed or decision.reason is DenialReason.QUOTA_EXCEEDED:
        return
    if decision.reason is DenialReason.UNAUTHENTICATED:
        raise UnauthenticatedError()
    if decision.reason is DenialReason.RATE_LIMITED:
        raise RateLimitedError()
    if decision.reason is DenialReason.FEATURE_DISABLED:
        raise FeatureDisabledError()


_access_gate: Optional[AccessGate] = None


def get_access_gate() -> AccessGate:
    """Global access gate, bound to the global store and rate limiter."""
    global _access_gate
    if _access_gate is None:
        _access_gate = AccessGate()
    return _access_gate
