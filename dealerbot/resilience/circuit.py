"""Per-dependency circuit breaker.

The state machine lives in three pure functions (:func:`check`,
:func:`on_success`, :func:`on_failure`). :class:`CircuitBreaker` binds them to
a :class:`CircuitStateRepository` so state survives across processes.

CLOSED -> OPEN after ``failure_threshold`` failures. OPEN -> HALF_OPEN on the
first check once ``reset_timeout`` has elapsed. HALF_OPEN -> CLOSED after
``success_threshold`` successes, or straight back to OPEN on any failure.
A success in CLOSED only decrements the failure count.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from dealerbot.core.errors import CircuitOpenError, StoreError
from dealerbot.core.metrics import MetricsCollector
from dealerbot.memory.store import KeyValueStore

logger = logging.getLogger("dealerbot.circuit")

T = TypeVar("T")

CIRCUIT_TTL_SECONDS = 3600


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True, slots=True)
class CircuitConfig:
    failure_threshold: int
    reset_timeout: float
    success_threshold: int = 2


REASONER = "reasoner"
GATEWAY = "gateway"
INVENTORY = "inventory"

DEFAULT_CONFIGS: dict[str, CircuitConfig] = {
    REASONER: CircuitConfig(failure_threshold=5, reset_timeout=30),
    GATEWAY: CircuitConfig(failure_threshold=3, reset_timeout=60),
    INVENTORY: CircuitConfig(failure_threshold=3, reset_timeout=30),
}


@dataclass(frozen=True, slots=True)
class CircuitRecord:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    last_failure: float = 0.0
    opened_at: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "last_failure": self.last_failure,
            "opened_at": self.opened_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CircuitRecord":
        return cls(
            state=CircuitState(payload.get("state", CircuitState.CLOSED.value)),
            failures=int(payload.get("failures", 0)),
            successes=int(payload.get("successes", 0)),
            last_failure=float(payload.get("last_failure", 0.0)),
            opened_at=float(payload.get("opened_at", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class CheckResult:
    allowed: bool
    record: CircuitRecord
    retry_in: int = 0


def check(record: CircuitRecord, config: CircuitConfig, now: float) -> CheckResult:
    if record.state is not CircuitState.OPEN:
        return CheckResult(allowed=True, record=record)

    elapsed = now - record.opened_at
    if elapsed >= config.reset_timeout:
        return CheckResult(allowed=True, record=replace(record, state=CircuitState.HALF_OPEN, successes=0))
    return CheckResult(allowed=False, record=record, retry_in=math.ceil(config.reset_timeout - elapsed))


def on_success(record: CircuitRecord, config: CircuitConfig, now: float) -> CircuitRecord:
    if record.state is CircuitState.HALF_OPEN:
        successes = record.successes + 1
        if successes >= config.success_threshold:
            return replace(record, state=CircuitState.CLOSED, failures=0, successes=0)
        return replace(record, successes=successes)
    if record.state is CircuitState.CLOSED:
        return replace(record, failures=max(0, record.failures - 1))
    return record


def on_failure(record: CircuitRecord, config: CircuitConfig, now: float) -> CircuitRecord:
    if record.state is CircuitState.HALF_OPEN:
        return replace(record, state=CircuitState.OPEN, successes=0, last_failure=now, opened_at=now)
    failures = record.failures + 1
    if record.state is CircuitState.CLOSED and failures >= config.failure_threshold:
        return replace(record, state=CircuitState.OPEN, failures=failures, last_failure=now, opened_at=now)
    return replace(record, failures=failures, last_failure=now)


class CircuitStateRepository(ABC):
    """Persistence for circuit records."""

    @abstractmethod
    async def get(self, name: str) -> CircuitRecord | None:
        """Return the stored record or ``None``."""

    @abstractmethod
    async def put(self, name: str, record: CircuitRecord) -> None:
        """Store the record and refresh its expiry."""

    @abstractmethod
    async def names(self) -> list[str]:
        """Names of circuits with a stored record."""


class KeyValueCircuitRepository(CircuitStateRepository):
    """Stores records as ``circuit:{name}`` with a one-hour expiry refreshed per write."""

    prefix = "circuit:"

    def __init__(self, store: KeyValueStore, ttl_seconds: int = CIRCUIT_TTL_SECONDS) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def get(self, name: str) -> CircuitRecord | None:
        payload = await self._store.get(self.prefix + name)
        return CircuitRecord.from_dict(payload) if payload else None

    async def put(self, name: str, record: CircuitRecord) -> None:
        await self._store.put(self.prefix + name, record.to_dict(), ttl_seconds=self._ttl_seconds)

    async def names(self) -> list[str]:
        return [key[len(self.prefix):] for key in await self._store.keys(self.prefix)]


class CircuitBreaker:
    """Guards calls to named dependencies."""

    def __init__(
        self,
        repository: CircuitStateRepository,
        configs: Mapping[str, CircuitConfig] | None = None,
        *,
        clock: Callable[[], float] = time.time,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._repository = repository
        self._configs = dict(DEFAULT_CONFIGS if configs is None else configs)
        self._clock = clock
        self._metrics = metrics

    def config_for(self, name: str) -> CircuitConfig:
        return self._configs.get(name) or DEFAULT_CONFIGS[REASONER]

    async def load(self, name: str) -> CircuitRecord:
        try:
            return await self._repository.get(name) or CircuitRecord()
        except StoreError:
            logger.warning("Circuit %s unreadable, assuming CLOSED", name, exc_info=True)
            return CircuitRecord()

    async def _save(self, name: str, record: CircuitRecord) -> None:
        try:
            await self._repository.put(name, record)
        except StoreError:
            logger.error("Circuit %s state not persisted", name, exc_info=True)

    async def can_execute(self, name: str) -> CheckResult:
        record = await self.load(name)
        result = check(record, self.config_for(name), self._clock())
        if result.record is not record:
            logger.info("Circuit %s OPEN -> HALF_OPEN", name)
            await self._save(name, result.record)
        return result

    async def record_success(self, name: str) -> CircuitRecord:
        record = await self.load(name)
        updated = on_success(record, self.config_for(name), self._clock())
        if updated.state is not record.state:
            logger.info("Circuit %s %s -> %s", name, record.state.value, updated.state.value)
        await self._save(name, updated)
        return updated

    async def record_failure(self, name: str) -> CircuitRecord:
        record = await self.load(name)
        updated = on_failure(record, self.config_for(name), self._clock())
        if updated.state is not record.state:
            logger.warning(
                "Circuit %s %s -> %s after %s failures",
                name,
                record.state.value,
                updated.state.value,
                updated.failures,
            )
        await self._save(name, updated)
        return updated

    async def call(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """Run ``fn`` through the circuit.

        A rejected call runs ``fallback`` or raises :class:`CircuitOpenError`.
        A failed call is recorded, then runs ``fallback`` or re-raises.
        """

        result = await self.can_execute(name)
        if not result.allowed:
            if self._metrics:
                self._metrics.record_circuit_rejection(name)
            if fallback is not None:
                return await fallback()
            raise CircuitOpenError(name, result.retry_in)

        try:
            value = await fn()
        except Exception:
            await self.record_failure(name)
            if fallback is not None:
                logger.warning("Call through circuit %s failed, using fallback", name, exc_info=True)
                return await fallback()
            raise
        await self.record_success(name)
        return value

    async def status_all(self) -> dict[str, CircuitRecord]:
        try:
            stored = await self._repository.names()
        except StoreError:
            logger.warning("Could not list circuits", exc_info=True)
            stored = []
        names = sorted(set(self._configs) | set(stored))
        return {name: await self.load(name) for name in names}

    async def reset(self, name: str) -> CircuitRecord:
        record = CircuitRecord()
        await self._save(name, record)
        logger.info("Circuit %s reset to CLOSED", name)
        return record
