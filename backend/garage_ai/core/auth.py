"""
Caller identity.

Authentication happens upstream: the product's session layer resolves the
garage and the user and forwards them as headers. This module only reads
them, and guards the admin console with a shared key.
"""
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status

from garage_ai.core.config import get_settings
from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

GARAGE_HEADER = "X-Garage-ID"
USER_HEADER = "X-User-ID"
ADMIN_KEY_HEADER = "X-Admin-Key"


@dataclass(frozen=True)
class RequestContext:
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.tenant_id)


def get_request_context(
    x_garage_id: Optional[str] = Header(default=None, alias=GARAGE_HEADER),
    x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> RequestContext:
    """
    FastAPI dependency; a missing garage is rejected later by the access gate.

    The log context for both ids is bound by TraceIDMiddleware.
    """
    return RequestContext(
        tenant_id=(x_garage_id or "").strip() or None,
        user_id=(x_user_id or "").strip() or None,
    )


def require_admin(
    x_admin_key: Optional[str] = Header(default=None, alias=ADMIN_KEY_HEADER),
) -> None:
    """FastAPI dependency guarding the admin console routes."""
    expected = get_settings().admin_api_key
    if not expected:
        logger.warning("admin_api_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        logger.warning("admin_auth_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized.")
