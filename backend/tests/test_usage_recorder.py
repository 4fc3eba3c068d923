"""
Unit tests for usage counting and the AI event log.
"""
from garage_ai.models.usage import FeatureKey, UsageEvent, UsageOutcome, UsageSummary, current_period
from garage_ai.services.store import InMemoryAIStore
from garage_ai.services.usage import UsageRecorder


class FailingStore(InMemoryAIStore):
    def increment_usage(self, garage_id, period):
        raise RuntimeError("rpc failed")

    def insert_event(self, event):
        raise RuntimeError("insert failed")


def test_success_increments_and_appends_event():
    store = InMemoryAIStore()
    recorder = UsageRecorder(store)

    recorder.record(
        "g",
        FeatureKey.COPILOT,
        UsageOutcome.SUCCESS,
        420,
        user_id="u",
        provider="mistral",
        model="mistral-large-latest",
    )

    assert store.get_usage_count("g", current_period()) == 1
    assert len(store.events) == 1
    row = store.events[0].to_row()
    assert row["feature"] == "copilot"
    assert row["status"] == "success"
    assert row["latency_ms"] == 420
    assert row["provider"] == "mistral"
    assert row["user_id"] == "u"


def test_error_without_usage_count_still_logs_event():
    store = InMemoryAIStore()

    UsageRecorder(store).record("g", FeatureKey.INSIGHTS, UsageOutcome.ERROR, 12, count_usage=False)

    assert store.get_usage_count("g", current_period()) == 0
    assert store.events[0].status is UsageOutcome.ERROR


def test_negative_latency_is_clamped():
    store = InMemoryAIStore()

    UsageRecorder(store).record("g", FeatureKey.AUDIT, UsageOutcome.SUCCESS, -5)

    assert store.events[0].latency_ms == 0


def test_store_failures_are_swallowed():
    # must not raise
    UsageRecorder(FailingStore()).record("g", FeatureKey.COPILOT, UsageOutcome.SUCCESS, 10)


def test_event_listing_is_newest_first_and_scoped():
    from datetime import datetime, timedelta, timezone

    store = InMemoryAIStore()
    start = datetime(2026, 10, 1, tzinfo=timezone.utc)
    for latency in (1, 2, 3):
        store.insert_event(
            UsageEvent(
                garage_id="g",
                feature=FeatureKey.QUICK_NOTE,
                status=UsageOutcome.SUCCESS,
                latency_ms=latency,
                created_at=start + timedelta(minutes=latency),
            )
        )
    store.insert_event(
        UsageEvent(garage_id="other", feature=FeatureKey.QUICK_NOTE, status=UsageOutcome.SUCCESS, latency_ms=99)
    )

    rows = store.list_events("g", limit=2)

    assert [r["latency_ms"] for r in rows] == [3, 2]


def test_usage_summary_remaining():
    assert UsageSummary(garage_id="g", period="2026-10", request_count=7, monthly_quota=10).remaining == 3
    assert UsageSummary(garage_id="g", period="2026-10", request_count=12, monthly_quota=10).remaining == 0
    assert UsageSummary(garage_id="g", period="2026-10", request_count=12).remaining is None


def test_current_period_format():
    from datetime import datetime, timezone

    assert current_period(datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc)) == "2026-03"
