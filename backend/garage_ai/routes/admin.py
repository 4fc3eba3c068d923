"""
Admin console endpoints for per-garage AI settings.

GET  /admin/garages/{garage_id}/feature-flags
PUT  /admin/garages/{garage_id}/feature-flags/{feature_key}
GET  /admin/garages/{garage_id}/usage
PUT  /admin/garages/{garage_id}/quota
GET  /admin/garages/{garage_id}/events

Every route requires the X-Admin-Key header.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from garage_ai.core.auth import require_admin
from garage_ai.core.logging import get_logger
from garage_ai.models.responses import FeatureFlagState, FeatureFlagUpdate, UsageEventRecord
from garage_ai.models.usage import ADMIN_FEATURE_FLAG_KEYS, UsageSummary, current_period
from garage_ai.services.store import AIStore, get_store

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


class QuotaUpdate(BaseModel):
    """``None`` removes the limit."""

    ai_monthly_quota: Optional[int] = Field(None, ge=0)


def _storage_error(operation: str, garage_id: str, e: Exception) -> HTTPException:
    logger.error(
        "admin_storage_error",
        operation=operation,
        garage_id=garage_id,
        error=str(e),
        error_type=type(e).__name__,
        exc_info=True,
    )
    return HTTPException(status_code=500, detail="Storage error")


@router.get("/garages/{garage_id}/feature-flags", response_model=List[FeatureFlagState])
async def list_feature_flags(garage_id: str, store: AIStore = Depends(get_store)):
    """
    State of every AI feature flag for a garage.

    Features without an explicit row are reported as enabled.
    """
    try:
        flags = store.list_feature_flags(garage_id)
    except Exception as e:
        raise _storage_error("list_feature_flags", garage_id, e)
    return [
        FeatureFlagState(feature_key=key, enabled=flags.get(key, True))
        for key in ADMIN_FEATURE_FLAG_KEYS
    ]


@router.put("/garages/{garage_id}/feature-flags/{feature_key}", response_model=FeatureFlagState)
async def set_feature_flag(
    garage_id: str,
    feature_key: str,
    update: FeatureFlagUpdate,
    store: AIStore = Depends(get_store),
):
    """Enable or disable one AI feature for a garage."""
    if feature_key not in ADMIN_FEATURE_FLAG_KEYS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown feature flag. Must be one of: {', '.join(ADMIN_FEATURE_FLAG_KEYS)}",
        )
    try:
        store.set_feature_flag(garage_id, feature_key, update.enabled)
    except Exception as e:
        raise _storage_error("set_feature_flag", garage_id, e)

    logger.info(
        "admin_feature_flag_updated",
        garage_id=garage_id,
        feature_key=feature_key,
        enabled=update.enabled,
    )
    return FeatureFlagState(feature_key=feature_key, enabled=update.enabled)


@router.get("/garages/{garage_id}/usage")
async def get_usage(garage_id: str, store: AIStore = Depends(get_store)):
    """Current-month request count against the garage's allotment."""
    period = current_period()
    try:
        summary = UsageSummary(
            garage_id=garage_id,
            period=period,
            request_count=store.get_usage_count(garage_id, period),
            monthly_quota=store.get_monthly_quota(garage_id),
        )
    except Exception as e:
        raise _storage_error("get_usage", garage_id, e)
    return {**summary.model_dump(), "remaining": summary.remaining}


@router.put("/garages/{garage_id}/quota")
async def set_quota(garage_id: str, update: QuotaUpdate, store: AIStore = Depends(get_store)):
    try:
        store.set_monthly_quota(garage_id, update.ai_monthly_quota)
    except Exception as e:
        raise _storage_error("set_quota", garage_id, e)
    logger.info(
        "admin_quota_updated",
        garage_id=garage_id,
        ai_monthly_quota=update.ai_monthly_quota,
    )
    return {"garage_id": garage_id, "ai_monthly_quota": update.ai_monthly_quota}


@router.get("/garages/{garage_id}/events", response_model=List[UsageEventRecord])
async def list_events(
    garage_id: str,
    limit: int = Query(50, ge=1, le=500),
    store: AIStore = Depends(get_store),
):
    """Most recent AI events for a garage, newest first."""
    try:
        return store.list_events(garage_id, limit=limit)
    except Exception as e:
        raise _storage_error("list_events", garage_id, e)
