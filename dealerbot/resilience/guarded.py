"""Collaborators wrapped in circuit breaker (outer) and retry (inner)."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from dealerbot.core.errors import UpstreamError
from dealerbot.core.metrics import MetricsCollector
from dealerbot.resilience.circuit import GATEWAY, INVENTORY, REASONER, CircuitBreaker
from dealerbot.resilience.retry import GATEWAY_POLICY, INVENTORY_POLICY, REASONER_POLICY, RetryPolicy, with_retry
from dealerbot.tools.base import (
    Car,
    CarRepository,
    ChatMessage,
    Completion,
    MessageBus,
    Reasoner,
    SearchFilters,
)

logger = logging.getLogger("dealerbot.guarded")

T = TypeVar("T")


async def guarded_call(
    breaker: CircuitBreaker,
    name: str,
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    fallback: Callable[[], Awaitable[T]] | None = None,
) -> T:
    """One circuit-level call made of up to ``policy.max_retries + 1`` attempts.

    Failures surface as :class:`UpstreamError` (or its subclass
    :class:`~dealerbot.core.errors.CircuitOpenError`) unless a fallback is given.
    """

    async def attempt() -> T:
        result = await with_retry(operation, policy, label=name)
        if result.success:
            return result.data  # type: ignore[return-value]
        error = result.error
        if isinstance(error, UpstreamError):
            raise error
        raise UpstreamError(f"{name} failed after {result.attempts} attempt(s): {error}") from error

    return await breaker.call(name, attempt, fallback)


class GuardedReasoner(Reasoner):
    """Reasoner whose calls are protected and counted."""

    def __init__(
        self,
        inner: Reasoner,
        breaker: CircuitBreaker,
        *,
        policy: RetryPolicy = REASONER_POLICY,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.inner = inner
        self._breaker = breaker
        self._policy = policy
        self._metrics = metrics

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        try:
            completion = await guarded_call(
                self._breaker,
                REASONER,
                lambda: self.inner.complete(messages, temperature=temperature, max_tokens=max_tokens),
                self._policy,
            )
        except UpstreamError:
            if self._metrics:
                self._metrics.record_reasoner_call(success=False)
            raise
        if self._metrics:
            self._metrics.record_reasoner_call(success=True)
        return completion


class GuardedCarRepository(CarRepository):
    """Inventory search that degrades to an empty result."""

    def __init__(self, inner: CarRepository, breaker: CircuitBreaker, *, policy: RetryPolicy = INVENTORY_POLICY) -> None:
        self.inner = inner
        self._breaker = breaker
        self._policy = policy

    async def search(self, filters: SearchFilters) -> list[Car]:
        async def no_results() -> list[Car]:
            logger.warning("Inventory unavailable, continuing without cars")
            return []

        return await guarded_call(
            self._breaker,
            INVENTORY,
            lambda: self.inner.search(filters),
            self._policy,
            fallback=no_results,
        )


class GuardedMessageBus(MessageBus):
    """Gateway delivery with its own retry and circuit."""

    def __init__(self, inner: MessageBus, breaker: CircuitBreaker, *, policy: RetryPolicy = GATEWAY_POLICY) -> None:
        self.inner = inner
        self._breaker = breaker
        self._policy = policy

    async def send(self, to: str, text: str) -> None:
        await guarded_call(self._breaker, GATEWAY, lambda: self.inner.send(to, text), self._policy)
