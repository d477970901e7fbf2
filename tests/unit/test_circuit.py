import pytest

from dealerbot.core.errors import CircuitOpenError, StoreError
from dealerbot.core.metrics import MetricsCollector
from dealerbot.resilience.circuit import (
    DEFAULT_CONFIGS,
    CircuitBreaker,
    CircuitConfig,
    CircuitRecord,
    CircuitState,
    CircuitStateRepository,
    KeyValueCircuitRepository,
    check,
    on_failure,
    on_success,
)

CONFIG = CircuitConfig(failure_threshold=3, reset_timeout=30)


class UnreadableRepository(CircuitStateRepository):
    def __init__(self):
        self.saved = {}

    async def get(self, name):
        raise StoreError("get failed: disk I/O error")

    async def put(self, name, record):
        self.saved[name] = record

    async def names(self):
        raise StoreError("keys failed: disk I/O error")


def breaker_for(memory_store, clock, metrics=None):
    return CircuitBreaker(KeyValueCircuitRepository(memory_store), {"svc": CONFIG}, clock=clock, metrics=metrics)


async def failing():
    raise RuntimeError("upstream down")


async def succeeding():
    return "ok"


def test_failures_open_the_circuit_at_the_threshold():
    record = CircuitRecord()
    for now in (1.0, 2.0):
        record = on_failure(record, CONFIG, now)
        assert record.state is CircuitState.CLOSED

    record = on_failure(record, CONFIG, 3.0)

    assert record.state is CircuitState.OPEN
    assert record.failures == 3
    assert record.opened_at == 3.0


def test_success_while_closed_decrements_failures():
    record = CircuitRecord(failures=2)

    assert on_success(record, CONFIG, 0.0).failures == 1
    assert on_success(CircuitRecord(), CONFIG, 0.0).failures == 0


def test_open_circuit_rejects_until_the_reset_timeout():
    record = CircuitRecord(state=CircuitState.OPEN, failures=3, opened_at=100.0)

    rejected = check(record, CONFIG, 110.0)
    assert rejected.allowed is False
    assert rejected.retry_in == 20

    probing = check(record, CONFIG, 130.0)
    assert probing.allowed is True
    assert probing.record.state is CircuitState.HALF_OPEN


def test_half_open_closes_after_two_successes_and_reopens_on_failure():
    record = CircuitRecord(state=CircuitState.HALF_OPEN, failures=3)

    once = on_success(record, CONFIG, 0.0)
    assert once.state is CircuitState.HALF_OPEN
    closed = on_success(once, CONFIG, 0.0)
    assert closed.state is CircuitState.CLOSED
    assert closed.failures == 0

    reopened = on_failure(once, CONFIG, 500.0)
    assert reopened.state is CircuitState.OPEN
    assert reopened.opened_at == 500.0


@pytest.mark.asyncio
async def test_breaker_full_cycle(memory_store, clock):
    breaker = breaker_for(memory_store, clock)
    calls = 0

    async def counted():
        nonlocal calls
        calls += 1
        return "ok"

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await breaker.call("svc", failing)
    assert (await breaker.load("svc")).state is CircuitState.OPEN

    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.call("svc", counted)
    assert calls == 0
    assert str(excinfo.value) == "Circuit svc OPEN. Retry in 30s"

    clock.advance(30)
    assert await breaker.call("svc", counted) == "ok"
    assert (await breaker.load("svc")).state is CircuitState.HALF_OPEN

    assert await breaker.call("svc", counted) == "ok"
    record = await breaker.load("svc")
    assert record.state is CircuitState.CLOSED
    assert record.failures == 0
    assert calls == 2


@pytest.mark.asyncio
async def test_rejected_call_uses_fallback_and_counts(memory_store, clock):
    metrics = MetricsCollector()
    breaker = breaker_for(memory_store, clock, metrics)
    for _ in range(3):
        await breaker.record_failure("svc")

    async def fallback():
        return "cached"

    assert await breaker.call("svc", succeeding, fallback) == "cached"
    assert metrics.snapshot().circuit_rejections == {"svc": 1}


@pytest.mark.asyncio
async def test_failed_call_with_fallback_is_still_recorded(memory_store, clock):
    breaker = breaker_for(memory_store, clock)

    async def fallback():
        return "fallback"

    assert await breaker.call("svc", failing, fallback) == "fallback"
    assert (await breaker.load("svc")).failures == 1


@pytest.mark.asyncio
async def test_unreadable_state_is_treated_as_closed(clock):
    breaker = CircuitBreaker(UnreadableRepository(), {"svc": CONFIG}, clock=clock)

    assert await breaker.call("svc", succeeding) == "ok"
    assert (await breaker.status_all())["svc"].state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_state_is_shared_through_the_store(memory_store, clock):
    first = breaker_for(memory_store, clock)
    second = breaker_for(memory_store, clock)
    for _ in range(3):
        await first.record_failure("svc")

    assert (await second.can_execute("svc")).allowed is False


@pytest.mark.asyncio
async def test_status_and_reset(memory_store, clock):
    breaker = CircuitBreaker(KeyValueCircuitRepository(memory_store), clock=clock)
    for _ in range(DEFAULT_CONFIGS["gateway"].failure_threshold):
        await breaker.record_failure("gateway")

    status = await breaker.status_all()
    assert set(status) == {"reasoner", "gateway", "inventory"}
    assert status["gateway"].state is CircuitState.OPEN

    await breaker.reset("gateway")
    assert (await breaker.load("gateway")).state is CircuitState.CLOSED


def test_unknown_names_use_the_reasoner_config():
    breaker = CircuitBreaker(UnreadableRepository())

    assert breaker.config_for("crm") == DEFAULT_CONFIGS["reasoner"]
