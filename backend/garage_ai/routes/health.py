"""
Health check endpoints.
"""
from fastapi import APIRouter

from garage_ai.core.config import get_settings
from garage_ai.core.logging import get_logger
from garage_ai.services.ai.service import get_decision_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/providers")
async def providers_health():
    """
    Which text-generation providers have a usable credential.

    No provider is called; a garage request with zero configured providers
    always ends in the manual-mode fallback.
    """
    providers = get_decision_service().providers
    configured = [p.name for p in providers if p.is_configured()]
    settings = get_settings()
    return {
        "status": "ok" if configured else "degraded",
        "configured": configured,
        "order": [p.name for p in providers],
        "timeout_ms": settings.ai_timeout_ms,
        "max_retries": settings.ai_max_retries,
    }
