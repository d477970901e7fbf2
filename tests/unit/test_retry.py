import asyncio

import httpx
import pytest

from dealerbot.core.errors import CircuitOpenError, UpstreamError
from dealerbot.resilience.retry import RetryPolicy, backoff_delay, is_retryable, with_retry


class Flaky:
    """Fails with the given errors, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "done"


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_classification_of_errors():
    assert is_retryable(httpx.ConnectError("connection refused")) is True
    assert is_retryable(asyncio.TimeoutError()) is True
    assert is_retryable(UpstreamError("busy", status_code=503)) is True
    assert is_retryable(UpstreamError("bad request", status_code=400)) is False
    assert is_retryable(RuntimeError("fetch failed")) is True
    assert is_retryable(ValueError("bad payload")) is False
    assert is_retryable(CircuitOpenError("reasoner", 12)) is False


def test_backoff_grows_and_is_capped():
    policy = RetryPolicy(initial_delay=1.0, multiplier=2.0, max_delay=10.0, jitter=0.3)

    assert backoff_delay(policy, 1, rand=lambda: 0.0) == 1.0
    assert backoff_delay(policy, 3, rand=lambda: 0.0) == 4.0
    assert backoff_delay(policy, 1, rand=lambda: 1.0) == pytest.approx(1.3)
    assert backoff_delay(policy, 10, rand=lambda: 1.0) == 10.0


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    operation = Flaky(httpx.ConnectError("connection refused"), UpstreamError("busy", status_code=503))
    sleeps = Sleeps()

    result = await with_retry(operation, RetryPolicy(max_retries=3), sleep=sleeps, rand=lambda: 0.0)

    assert result.success is True
    assert result.data == "done"
    assert result.attempts == 3
    assert sleeps.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_error_stops_immediately():
    operation = Flaky(ValueError("bad payload"))
    sleeps = Sleeps()

    result = await with_retry(operation, RetryPolicy(max_retries=3), sleep=sleeps)

    assert result.success is False
    assert result.attempts == 1
    assert isinstance(result.error, ValueError)
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_exhaustion_returns_the_last_error():
    operation = Flaky(*[UpstreamError(f"busy {n}", status_code=503) for n in range(5)])
    sleeps = Sleeps()

    result = await with_retry(operation, RetryPolicy(max_retries=2), sleep=sleeps, rand=lambda: 0.0)

    assert result.success is False
    assert result.attempts == 3
    assert str(result.error) == "busy 2"
    assert len(sleeps.delays) == 2


@pytest.mark.asyncio
async def test_each_attempt_is_bounded_by_the_timeout():
    async def slow():
        await asyncio.sleep(1)

    result = await with_retry(slow, RetryPolicy(max_retries=0, timeout=0.01))

    assert result.success is False
    assert result.attempts == 1
    assert isinstance(result.error, asyncio.TimeoutError)
