"""
Tenant-scoped usage models: feature keys, usage events and quota periods.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FeatureKey(str, Enum):
    """AI-assisted capabilities, used in usage events and metrics."""

    CLIENT_MESSAGE = "client_message"
    QUOTE_EXPLAIN = "quote_explain"
    INSIGHTS = "insights"
    PLANNING_SUGGEST = "planning_suggest"
    QUICK_NOTE = "quick_note"
    COPILOT = "copilot"
    AUDIT = "audit"
    GENERATE_QUOTE_LINES = "generate_quote_lines"


# Admin console flag keys (garage_feature_flags.feature_key)
FEATURE_FLAG_KEYS = {
    FeatureKey.CLIENT_MESSAGE: "ai_client_message",
    FeatureKey.QUOTE_EXPLAIN: "ai_quote_explain",
    FeatureKey.INSIGHTS: "ai_insights",
    FeatureKey.PLANNING_SUGGEST: "ai_planning",
    FeatureKey.QUICK_NOTE: "ai_quick_note",
    FeatureKey.COPILOT: "ai_copilot",
    FeatureKey.AUDIT: "ai_quote_audit",
    FeatureKey.GENERATE_QUOTE_LINES: "ai_generate_lines",
}

ADMIN_FEATURE_FLAG_KEYS = tuple(FEATURE_FLAG_KEYS.values())


class UsageOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class UsageEvent(BaseModel):
    """Append-only row of the ai_events table."""

    garage_id: str
    user_id: Optional[str] = None
    feature: FeatureKey
    status: UsageOutcome
    latency_ms: int = Field(..., ge=0)
    provider: Optional[str] = None
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> dict:
        return {
            "garage_id": self.garage_id,
            "user_id": self.user_id,
            "feature": self.feature.value,
            "status": self.status.value,
            "latency_ms": self.latency_ms,
            "provider": self.provider,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
        }


class UsageSummary(BaseModel):
    """Current-period consumption for one garage."""

    garage_id: str
    period: str
    request_count: int
    monthly_quota: Optional[int] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.monthly_quota is None:
            return None
        return max(0, self.monthly_quota - self.request_count)


def current_period(now: Optional[datetime] = None) -> str:
    """Calendar-month identifier, e.g. ``2026-10`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year}-{now.month:02d}"
