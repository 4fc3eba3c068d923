"""
Per-garage rate limiting for AI requests.

Two backends behind one interface:
- InMemoryRateLimiter (default): fixed 60 s window per garage, process-local,
  lost on restart
- RedisRateLimiter: sliding window counter on a Redis sorted set, shared by
  every instance

A request that passes consumes one slot; a refused request consumes nothing.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from redis import asyncio as aioredis
from redis.asyncio import Redis

from garage_ai.core.config import get_settings
from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Interface: ``await hit(key)`` checks and, when allowed, consumes a slot."""

    def __init__(self, limit: int = DEFAULT_LIMIT, window_seconds: int = DEFAULT_WINDOW_SECONDS):
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, key: str) -> RateLimitDecision:
        raise NotImplementedError

    async def reset(self, key: Optional[str] = None) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    """
    Fixed-window counter.

    Each garage gets ``limit`` requests per window; the window starts with
    the first request and resets ``window_seconds`` later. The whole check is
    synchronous, so concurrent tasks on one event loop cannot interleave it.
    """

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(limit, window_seconds)
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}  # key -> (count, reset_at)
        self._next_sweep = 0.0

    def window_count(self) -> int:
        """Number of garages currently holding a window."""
        return len(self._windows)

    def _evict_expired(self, now: float) -> None:
        # at most one sweep per window length
        if now < self._next_sweep:
            return
        self._windows = {key: entry for key, entry in self._windows.items() if entry[1] > now}
        self._next_sweep = now + self.window_seconds

    async def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        self._evict_expired(now)
        count, reset_at = self._windows.get(key, (0, 0.0))

        if now >= reset_at:
            reset_at = now + self.window_seconds
            self._windows[key] = (1, reset_at)
            return RateLimitDecision(True, self.limit - 1, reset_at)

        if count >= self.limit:
            return RateLimitDecision(False, 0, reset_at)

        self._windows[key] = (count + 1, reset_at)
        return RateLimitDecision(True, self.limit - count - 1, reset_at)

    async def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)


class RedisRateLimiter(RateLimiter):
    """Sliding window counter on a sorted set of request timestamps."""

    def __init__(
        self,
        redis_client: Redis,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        prefix: str = "ratelimit:ai",
    ):
        super().__init__(limit, window_seconds)
        self.redis_client = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def hit(self, key: str) -> RateLimitDecision:
        now = time.time()
        redis_key = self._key(key)
        reset_at = now + self.window_seconds

        try:
            # Drop entries outside the window, then count what is left
            await self.redis_client.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            count = await self.redis_client.zcard(redis_key)
            if count >= self.limit:
                return RateLimitDecision(False, 0, reset_at)

            await self.redis_client.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            await self.redis_client.expire(redis_key, self.window_seconds)
            return RateLimitDecision(True, max(0, self.limit - count - 1), reset_at)

        except Exception as e:
            logger.warning(
                "rate_limit_check_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Fail open: Redis trouble must not lock garages out
            return RateLimitDecision(True, self.limit, reset_at)

    async def reset(self, key: Optional[str] = None) -> None:
        if key is not None:
            await self.redis_client.delete(self._key(key))


_rate_limiter: Optional[RateLimiter] = None


def build_rate_limiter() -> RateLimiter:
    settings = get_settings()
    if settings.rate_limit_backend == "redis":
        redis_client = aioredis.from_url(
            settings.redis_url,
            socket_connect_timeout=5,
            socket_timeout=5,
            decode_responses=True,
        )
        logger.info("rate_limiter_initialized", backend="redis", url=settings.redis_url)
        return RedisRateLimiter(
            redis_client,
            limit=settings.rate_limit_per_minute,
            window_seconds=settings.rate_limit_window_seconds,
        )

    logger.info("rate_limiter_initialized", backend="memory")
    return InMemoryRateLimiter(
        limit=settings.rate_limit_per_minute,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_rate_limiter() -> RateLimiter:
    """Global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = build_rate_limiter()
    return _rate_limiter


def set_rate_limiter(limiter: Optional[RateLimiter]) -> None:
    """Replace the global limiter (tests, custom wiring)."""
    global _rate_limiter
    _rate_limiter = limiter
