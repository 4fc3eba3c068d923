"""
Response models for API endpoints.

Successful generations return the feature's own shape (see
``services.ai.schema``); the models below cover the soft-failure envelope,
the audit and the admin console.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from garage_ai.models.quote import Finding, QuoteLine


class FallbackResponse(BaseModel):
    """Soft failure: HTTP 200, the front-end switches to manual mode."""

    model_config = ConfigDict(populate_by_name=True)

    fallback: bool = True
    error: str
    quota_exceeded: Optional[bool] = Field(default=None, alias="quotaExceeded")


class ErrorResponse(BaseModel):
    """Hard failure body, rendered by the exception handlers."""

    detail: Any
    status_code: int
    trace_id: Optional[str] = None


class QuoteAuditResult(BaseModel):
    findings: List[Finding]


class ApplyFixesResult(BaseModel):
    lines: List[QuoteLine]


class FeatureFlagState(BaseModel):
    feature_key: str
    enabled: bool


class FeatureFlagUpdate(BaseModel):
    enabled: bool


class UsageEventRecord(BaseModel):
    garage_id: str
    user_id: Optional[str] = None
    feature: str
    status: str
    latency_ms: int
    provider: Optional[str] = None
    model: Optional[str] = None
    created_at: Optional[datetime] = None
