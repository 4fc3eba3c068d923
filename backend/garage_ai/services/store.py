"""
Storage for tenant-scoped AI state.

Tables (see backend/migrations/001_ai_decision_core.sql):
- garage_settings(garage_id, ai_monthly_quota, hourly_rate)
- ai_usage(garage_id, period, request_count)  -- one row per garage and month
- garage_feature_flags(garage_id, feature_key, enabled)
- ai_events(garage_id, user_id, feature, status, latency_ms, provider, model, created_at)

SupabaseAIStore is used in production; InMemoryAIStore implements the same
interface for tests and local development.
"""
from collections import defaultdict
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from garage_ai.core.config import get_settings
from garage_ai.core.database import get_supabase_client
from garage_ai.core.logging import get_logger
from garage_ai.models.usage import UsageEvent

logger = get_logger(__name__)

DEFAULT_EVENT_LIMIT = 50


class AIStore:
    """Interface shared by every storage backend."""

    def get_monthly_quota(self, garage_id: str) -> Optional[int]:
        """Monthly allotment; None means unlimited."""
        raise NotImplementedError

    def set_monthly_quota(self, garage_id: str, quota: Optional[int]) -> None:
        raise NotImplementedError

    def get_hourly_rate(self, garage_id: str) -> Optional[float]:
        raise NotImplementedError

    def get_usage_count(self, garage_id: str, period: str) -> int:
        raise NotImplementedError

    def increment_usage(self, garage_id: str, period: str) -> int:
        """Atomically add one request to the period counter; returns the new count."""
        raise NotImplementedError

    def get_feature_flag(self, garage_id: str, feature_key: str) -> Optional[bool]:
        """Explicit flag value, or None when no row exists."""
        raise NotImplementedError

    def list_feature_flags(self, garage_id: str) -> Dict[str, bool]:
        raise NotImplementedError

    def set_feature_flag(self, garage_id: str, feature_key: str, enabled: bool) -> None:
        raise NotImplementedError

    def insert_event(self, event: UsageEvent) -> None:
        raise NotImplementedError

    def list_events(self, garage_id: str, limit: int = DEFAULT_EVENT_LIMIT) -> List[Dict[str, Any]]:
        """Most recent first."""
        raise NotImplementedError


class SupabaseAIStore(AIStore):
    def __init__(self, client: Client):
        self.client = client

    def _settings_row(self, garage_id: str) -> Optional[Dict[str, Any]]:
        response = (
            self.client.table("garage_settings")
            .select("ai_monthly_quota, hourly_rate")
            .eq("garage_id", garage_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def get_monthly_quota(self, garage_id: str) -> Optional[int]:
        row = self._settings_row(garage_id)
        if not row or row.get("ai_monthly_quota") is None:
            return None
        return int(row["ai_monthly_quota"])

    def set_monthly_quota(self, garage_id: str, quota: Optional[int]) -> None:
        self.client.table("garage_settings").upsert(
            {"garage_id": garage_id, "ai_monthly_quota": quota},
            on_conflict="garage_id",
        ).execute()

    def get_hourly_rate(self, garage_id: str) -> Optional[float]:
        row = self._settings_row(garage_id)
        if not row or row.get("hourly_rate") is None:
            return None
        return float(row["hourly_rate"])

    def get_usage_count(self, garage_id: str, period: str) -> int:
        response = (
            self.client.table("ai_usage")
            .select("request_count")
            .eq("garage_id", garage_id)
            .eq("period", period)
            .limit(1)
            .execute()
        )
        if not response.data:
            return 0
        return int(response.data[0].get("request_count") or 0)

    def increment_usage(self, garage_id: str, period: str) -> int:
        # Single INSERT ... ON CONFLICT DO UPDATE inside the database function
        response = self.client.rpc(
            "increment_ai_usage",
            {"p_garage_id": garage_id, "p_period": period},
        ).execute()
        data = response.data
        if isinstance(data, list):
            data = data[0] if data else 0
        if isinstance(data, dict):
            data = data.get("increment_ai_usage", 0)
        return int(data or 0)

    def get_feature_flag(self, garage_id: str, feature_key: str) -> Optional[bool]:
        response = (
            self.client.table("garage_feature_flags")
            .select("enabled")
            .eq("garage_id", garage_id)
            .eq("feature_key", feature_key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return bool(response.data[0].get("enabled"))

    def list_feature_flags(self, garage_id: str) -> Dict[str, bool]:
        response = (
            self.client.table("garage_feature_flags")
            .select("feature_key, enabled")
            .eq("garage_id", garage_id)
            .execute()
        )
        return {row["feature_key"]: bool(row["enabled"]) for row in response.data or []}

    def set_feature_flag(self, garage_id: str, feature_key: str, enabled: bool) -> None:
        self.client.table("garage_feature_flags").upsert(
            {"garage_id": garage_id, "feature_key": feature_key, "enabled": enabled},
            on_conflict="garage_id,feature_key",
        ).execute()

    def insert_event(self, event: UsageEvent) -> None:
        self.client.table("ai_events").insert(event.to_row()).execute()

    def list_events(self, garage_id: str, limit: int = DEFAULT_EVENT_LIMIT) -> List[Dict[str, Any]]:
        response = (
            self.client.table("ai_events")
            .select("*")
            .eq("garage_id", garage_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return list(response.data or [])


class InMemoryAIStore(AIStore):
    """Dict-backed store; the usage counter is guarded by a lock."""

    def __init__(self):
        self._lock = Lock()
        self.quotas: Dict[str, Optional[int]] = {}
        self.hourly_rates: Dict[str, float] = {}
        self.usage: Dict[Tuple[str, str], int] = defaultdict(int)
        self.flags: Dict[Tuple[str, str], bool] = {}
        self.events: List[UsageEvent] = []

    def get_monthly_quota(self, garage_id: str) -> Optional[int]:
        return self.quotas.get(garage_id)

    def set_monthly_quota(self, garage_id: str, quota: Optional[int]) -> None:
        self.quotas[garage_id] = quota

    def get_hourly_rate(self, garage_id: str) -> Optional[float]:
        return self.hourly_rates.get(garage_id)

    def get_usage_count(self, garage_id: str, period: str) -> int:
        return self.usage.get((garage_id, period), 0)

    def increment_usage(self, garage_id: str, period: str) -> int:
        with self._lock:
            self.usage[(garage_id, period)] += 1
            return self.usage[(garage_id, period)]

    def get_feature_flag(self, garage_id: str, feature_key: str) -> Optional[bool]:
        return self.flags.get((garage_id, feature_key))

    def list_feature_flags(self, garage_id: str) -> Dict[str, bool]:
        return {key: enabled for (gid, key), enabled in self.flags.items() if gid == garage_id}

    def set_feature_flag(self, garage_id: str, feature_key: str, enabled: bool) -> None:
        self.flags[(garage_id, feature_key)] = enabled

    def insert_event(self, event: UsageEvent) -> None:
        self.events.append(event)

    def list_events(self, garage_id: str, limit: int = DEFAULT_EVENT_LIMIT) -> List[Dict[str, Any]]:
        rows = [e.to_row() for e in self.events if e.garage_id == garage_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return rows[:limit]


_store: Optional[AIStore] = None


def build_store() -> AIStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.info("ai_store_initialized", backend="memory")
        return InMemoryAIStore()

    client = get_supabase_client()
    if client is None:
        logger.error(
            "ai_store_supabase_unavailable",
            message="Falling back to the in-memory store; quotas, flags and events are not persisted",
        )
        return InMemoryAIStore()

    logger.info("ai_store_initialized", backend="supabase")
    return SupabaseAIStore(client)


def get_store() -> AIStore:
    """Global store instance."""
    global _store
    if _store is None:
        _store = build_store()
    return _store


def set_store(store: Optional[AIStore]) -> None:
    global _store
    _store = store
