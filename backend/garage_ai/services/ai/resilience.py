"""
Resilience wrapper for one provider call.

Races the call against a timer, retries the whole call on any failure (no
backoff) and maps whatever went wrong to one of the user-safe messages in
``core.errors``. Never raises for call failures; cancellation of the caller's
task still propagates.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx

from garage_ai.core.errors import (
    CATEGORY_MESSAGES,
    AttemptTimeoutError,
    ErrorCategory,
    ProviderError,
)
from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_RETRIES = 1


@dataclass
class CallResult(Generic[T]):
    """Exactly one of ``data`` / ``error`` is set; latency is always measured."""

    data: Optional[T] = None
    error: Optional[str] = None
    category: Optional[ErrorCategory] = None
    latency_ms: int = 0
    raw_error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _status_category(status_code: Optional[int]) -> Optional[ErrorCategory]:
    if status_code == 429:
        return ErrorCategory.UPSTREAM_RATE_LIMITED
    if status_code in (401, 403):
        return ErrorCategory.UPSTREAM_UNAUTHORIZED
    return None


def classify_error(exc: BaseException) -> ErrorCategory:
    """Map an exception raised by a provider call to a failure category."""
    if isinstance(exc, (AttemptTimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorCategory.TIMEOUT

    if isinstance(exc, ProviderError):
        return _status_category(exc.status_code) or ErrorCategory.UNKNOWN

    if isinstance(exc, httpx.HTTPStatusError):
        return _status_category(exc.response.status_code) or ErrorCategory.UNKNOWN

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ErrorCategory.NETWORK

    return ErrorCategory.UNKNOWN


def user_message_for(category: ErrorCategory) -> str:
    return CATEGORY_MESSAGES.get(category, CATEGORY_MESSAGES[ErrorCategory.UNKNOWN])


async def _attempt_once(fn: Callable[[], Awaitable[T]], timeout_ms: int) -> T:
    try:
        return await asyncio.wait_for(fn(), timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError as exc:
        raise AttemptTimeoutError(f"attempt exceeded {timeout_ms} ms") from exc


async def safe_call(
    fn: Callable[[], Awaitable[T]],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    label: Optional[str] = None,
) -> CallResult[T]:
    """
    Run ``fn`` under a timeout with up to ``max_retries`` extra attempts.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt
        timeout_ms: Budget for each attempt
        max_retries: Extra attempts after the first failure
        label: Free-form name for log lines (e.g. "mistral/mistral-large-latest")

    Returns:
        CallResult with the value, or a user-safe error and its category.
        ``latency_ms`` spans from the first attempt start to final resolution.
    """
    start = time.perf_counter()
    last_exc: Optional[BaseException] = None
    attempts = 0

    for attempt in range(max_retries + 1):
        attempts += 1
        try:
            data = await _attempt_once(fn, timeout_ms)
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "ai_attempt_failed",
                label=label,
                attempt=attempt + 1,
                max_attempts=max_retries + 1,
                error_type=type(exc).__name__,
                category=classify_error(exc).value,
            )
            continue

        return CallResult(
            data=data,
            latency_ms=int((time.perf_counter() - start) * 1000),
            attempts=attempts,
        )

    category = classify_error(last_exc) if last_exc is not None else ErrorCategory.UNKNOWN
    return CallResult(
        error=user_message_for(category),
        category=category,
        latency_ms=int((time.perf_counter() - start) * 1000),
        raw_error=f"{type(last_exc).__name__}: {last_exc}" if last_exc is not None else None,
        attempts=attempts,
    )

