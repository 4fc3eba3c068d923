"""Pydantic models for requests, responses, quotes and usage."""

from .quote import Finding, QuoteLine
from .responses import ErrorResponse, FallbackResponse
from .usage import FeatureKey, UsageEvent, UsageOutcome

__all__ = [
    "ErrorResponse",
    "FallbackResponse",
    "FeatureKey",
    "Finding",
    "QuoteLine",
    "UsageEvent",
    "UsageOutcome",
]
