"""
Error taxonomy and the closed set of user-safe messages.

Nothing raised by a provider, the network stack or a JSON parser ever reaches
an end user: the resilience wrapper maps it to one of the messages below and
the raw detail only goes to structured logs.
"""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Failure categories of a single provider attempt."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_UNAUTHORIZED = "upstream_unauthorized"
    UNKNOWN = "unknown"


MSG_TIMEOUT = "Request timed out. Please try again."
MSG_NETWORK = "AI service temporarily unavailable."
MSG_UPSTREAM_RATE_LIMITED = "Too many requests. Please try again later."
MSG_UPSTREAM_UNAUTHORIZED = "Access to the AI service was denied."
MSG_FALLBACK = "Automatic generation unavailable. You can continue manually."

MSG_UNAUTHENTICATED = "Unauthorized."
MSG_RATE_LIMITED = "Too many requests. Try again in a minute."
MSG_FEATURE_DISABLED = "This feature is disabled for this garage."
MSG_QUOTA_EXCEEDED = "AI quota reached. Contact support or upgrade your plan."
MSG_INVALID_INPUT = "Invalid data. Check the fields."
MSG_AUDIT_FAILED = "Quote analysis failed."

CATEGORY_MESSAGES = {
    ErrorCategory.NETWORK: MSG_NETWORK,
    ErrorCategory.TIMEOUT: MSG_TIMEOUT,
    ErrorCategory.UPSTREAM_RATE_LIMITED: MSG_UPSTREAM_RATE_LIMITED,
    ErrorCategory.UPSTREAM_UNAUTHORIZED: MSG_UPSTREAM_UNAUTHORIZED,
    ErrorCategory.UNKNOWN: MSG_FALLBACK,
}

USER_SAFE_MESSAGES = frozenset(
    {
        MSG_TIMEOUT,
        MSG_NETWORK,
        MSG_UPSTREAM_RATE_LIMITED,
        MSG_UPSTREAM_UNAUTHORIZED,
        MSG_FALLBACK,
        MSG_UNAUTHENTICATED,
        MSG_RATE_LIMITED,
        MSG_FEATURE_DISABLED,
        MSG_QUOTA_EXCEEDED,
        MSG_INVALID_INPUT,
        MSG_AUDIT_FAILED,
    }
)


class AttemptTimeoutError(Exception):
    """Raised when a provider attempt exceeds its time budget."""


class ProviderError(Exception):
    """
    Raised by provider adapters for an unusable upstream answer.

    ``status_code`` is the upstream HTTP status when there was one.
    """

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class AccessDeniedError(Exception):
    """Base class for gate refusals that map to a real HTTP status."""

    reason = "denied"
    status_code = 403
    user_message = MSG_FALLBACK

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.user_message = message or self.user_message


class UnauthenticatedError(AccessDeniedError):
    reason = "unauthenticated"
    status_code = 401
    user_message = MSG_UNAUTHENTICATED


class RateLimitedError(AccessDeniedError):
    reason = "rate_limited"
    status_code = 429
    user_message = MSG_RATE_LIMITED


class FeatureDisabledError(AccessDeniedError):
    reason = "feature_disabled"
    status_code = 403
    user_message = MSG_FEATURE_DISABLED


class InvalidInputError(Exception):
    """Caller-supplied payload failed structural validation (400)."""

    status_code = 400

    def __init__(self, message: str = MSG_INVALID_INPUT, details: Optional[list] = None):
        super().__init__(message)
        self.user_message = message
        self.details = details or []
