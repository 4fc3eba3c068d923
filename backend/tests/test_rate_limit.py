"""
Unit tests for per-garage rate limiting.
"""
import pytest
from unittest.mock import AsyncMock

from garage_ai.core.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
    get_rate_limiter,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_allows_up_to_limit_then_denies():
    limiter = InMemoryRateLimiter(limit=10, window_seconds=60, clock=FakeClock())

    decisions = [await limiter.hit("garage-1") for _ in range(11)]

    assert all(d.allowed for d in decisions[:10])
    assert not decisions[10].allowed
    assert decisions[9].remaining == 0
    assert decisions[0].remaining == 9


@pytest.mark.asyncio
async def test_window_resets_after_sixty_seconds():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(limit=2, window_seconds=60, clock=clock)

    await limiter.hit("g")
    await limiter.hit("g")
    assert not (await limiter.hit("g")).allowed

    clock.now = 1059.9
    assert not (await limiter.hit("g")).allowed

    clock.now = 1060.0
    assert (await limiter.hit("g")).allowed


@pytest.mark.asyncio
async def test_expired_windows_are_evicted():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(limit=2, window_seconds=60, clock=clock)

    for garage in ("a", "b", "c"):
        await limiter.hit(garage)
    assert limiter.window_count() == 3

    clock.now = 1060.0
    await limiter.hit("d")

    assert limiter.window_count() == 1


@pytest.mark.asyncio
async def test_denied_request_consumes_nothing():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=clock)

    await limiter.hit("g")
    for _ in range(5):
        await limiter.hit("g")
    clock.now += 60

    decision = await limiter.hit("g")
    assert decision.allowed
    assert decision.remaining == 0


@pytest.mark.asyncio
async def test_garages_are_isolated():
    limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=FakeClock())

    assert (await limiter.hit("a")).allowed
    assert not (await limiter.hit("a")).allowed
    assert (await limiter.hit("b")).allowed


@pytest.mark.asyncio
async def test_reset_clears_window():
    limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=FakeClock())

    await limiter.hit("a")
    await limiter.reset("a")

    assert (await limiter.hit("a")).allowed


@pytest.mark.asyncio
async def test_redis_limiter_allows_under_limit():
    redis_client = AsyncMock()
    redis_client.zcard.return_value = 3
    limiter = RedisRateLimiter(redis_client, limit=10, window_seconds=60)

    decision = await limiter.hit("garage-1")

    assert decision.allowed
    assert decision.remaining == 6
    redis_client.zadd.assert_awaited_once()
    redis_client.expire.assert_awaited_once_with("ratelimit:ai:garage-1", 60)


@pytest.mark.asyncio
async def test_redis_limiter_denies_at_limit_without_consuming():
    redis_client = AsyncMock()
    redis_client.zcard.return_value = 10
    limiter = RedisRateLimiter(redis_client, limit=10, window_seconds=60)

    decision = await limiter.hit("garage-1")

    assert not decision.allowed
    redis_client.zadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_limiter_fails_open():
    redis_client = AsyncMock()
    redis_client.zremrangebyscore.side_effect = ConnectionError("redis down")
    limiter = RedisRateLimiter(redis_client, limit=10, window_seconds=60)

    decision = await limiter.hit("garage-1")

    assert decision.allowed


def test_build_rate_limiter_uses_settings(monkeypatch):
    monkeypatch.setenv("AI_RATE_LIMIT_PER_MINUTE", "3")
    from garage_ai.core.config import reset_settings

    reset_settings()
    limiter = build_rate_limiter()

    assert isinstance(limiter, InMemoryRateLimiter)
    assert limiter.limit == 3
    assert limiter.window_seconds == 60


def test_get_rate_limiter_is_singleton():
    assert get_rate_limiter() is get_rate_limiter()
