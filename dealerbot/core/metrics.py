"""Lightweight in-memory metrics collector.

Counters are best-effort and reset on restart. One collector is built by the
application factory and handed to the pipeline and circuit breaker.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_turns: int
    intents: Dict[str, int]
    short_circuits: Dict[str, int]
    reasoner_calls: int
    reasoner_failures: int
    reformulations: Dict[str, int]
    fallbacks: int
    circuit_rejections: Dict[str, int]


class MetricsCollector:
    """Thread-safe counter storage for pipeline metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._intents: Counter[str] = Counter()
        self._short_circuits: Counter[str] = Counter()
        self._reasoner_calls = 0
        self._reasoner_failures = 0
        self._reformulations: Counter[str] = Counter()
        self._fallbacks = 0
        self._circuit_rejections: Counter[str] = Counter()

    def record_turn(self, intent: str) -> None:
        with self._lock:
            self._total_turns += 1
            self._intents[intent] += 1

    def record_short_circuit(self, source: str) -> None:
        with self._lock:
            self._short_circuits[source] += 1

    def record_reasoner_call(self, success: bool) -> None:
        with self._lock:
            self._reasoner_calls += 1
            if not success:
                self._reasoner_failures += 1

    def record_reformulation(self, check: str) -> None:
        with self._lock:
            self._reformulations[check] += 1

    def record_fallback(self) -> None:
        with self._lock:
            self._fallbacks += 1

    def record_circuit_rejection(self, name: str) -> None:
        with self._lock:
            self._circuit_rejections[name] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                intents=dict(self._intents),
                short_circuits=dict(self._short_circuits),
                reasoner_calls=self._reasoner_calls,
                reasoner_failures=self._reasoner_failures,
                reformulations=dict(self._reformulations),
                fallbacks=self._fallbacks,
                circuit_rejections=dict(self._circuit_rejections),
            )
