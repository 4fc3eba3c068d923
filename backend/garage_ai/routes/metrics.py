"""
GET /metrics: Prometheus scrape endpoint, unauthenticated.
"""
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from garage_ai.core.logging import get_logger
from garage_ai.core.metrics import get_metrics, get_metrics_content_type, update_resource_metrics

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def metrics():
    body = b"# Error collecting metrics\n"
    try:
        update_resource_metrics()
        body = get_metrics()
    except Exception as e:
        logger.error("metrics_collection_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
    return Response(content=body, media_type=get_metrics_content_type())
