"""Retry with exponential backoff, jitter and a per-attempt timeout."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

import httpx

from dealerbot.core.errors import CircuitOpenError, UpstreamError

logger = logging.getLogger("dealerbot.retry")

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
RETRYABLE_SIGNATURES = (
    "fetch failed",
    "network",
    "timeout",
    "timed out",
    "econnreset",
    "etimedout",
    "connection reset",
    "socket hang up",
    "429",
    "500",
    "502",
    "503",
    "504",
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    timeout: float = 30.0
    jitter: float = 0.3


REASONER_POLICY = RetryPolicy(max_retries=2, initial_delay=1.0, timeout=60.0)
GATEWAY_POLICY = RetryPolicy(max_retries=3, initial_delay=0.5, timeout=15.0)
INVENTORY_POLICY = RetryPolicy(max_retries=2, initial_delay=0.2, timeout=5.0)


@dataclass(slots=True)
class RetryResult(Generic[T]):
    success: bool
    data: T | None = None
    error: BaseException | None = None
    attempts: int = 0
    elapsed_ms: int = 0


def is_retryable(exc: BaseException) -> bool:
    """Transient network failures, timeouts and retryable HTTP statuses."""

    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    if isinstance(exc, UpstreamError) and exc.status_code is not None:
        return exc.status_code in RETRYABLE_STATUS
    message = str(exc).lower()
    return any(signature in message for signature in RETRYABLE_SIGNATURES)


def backoff_delay(policy: RetryPolicy, attempt: int, rand: Callable[[], float] = random.random) -> float:
    """Delay before retry number ``attempt`` (1-based), stretched by up to ``policy.jitter``."""

    delay = policy.initial_delay * policy.multiplier ** (attempt - 1) * (1 + policy.jitter * rand())
    return min(delay, policy.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rand: Callable[[], float] = random.random,
    clock: Callable[[], float] = time.monotonic,
) -> RetryResult[T]:
    """Run ``operation`` up to ``max_retries + 1`` times.

    Never raises for operation failures; the last error is returned in the
    result. Non-retryable errors stop immediately.
    """

    policy = policy or RetryPolicy()
    started = clock()
    attempts = 0
    last_error: BaseException | None = None

    while attempts <= policy.max_retries:
        attempts += 1
        try:
            data = await asyncio.wait_for(operation(), timeout=policy.timeout)
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            if not is_retryable(exc) or attempts > policy.max_retries:
                break
            delay = backoff_delay(policy, attempts, rand)
            logger.warning("%s attempt %s failed (%s), retrying in %.2fs", label, attempts, exc, delay)
            await sleep(delay)
            continue
        return RetryResult(
            success=True,
            data=data,
            attempts=attempts,
            elapsed_ms=int((clock() - started) * 1000),
        )

    logger.error("%s failed after %s attempt(s): %s", label, attempts, last_error)
    return RetryResult(
        success=False,
        error=last_error,
        attempts=attempts,
        elapsed_ms=int((clock() - started) * 1000),
    )
