"""Pytest unit test fixtures."""

import pytest

from dealerbot.memory.store import InMemoryKeyValueStore, SQLiteKeyValueStore
from dealerbot.memory.summary import TurnSummaryStore


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def sqlite_store(tmp_path):
    return SQLiteKeyValueStore(tmp_path / "kv.db")


@pytest.fixture()
def memory_store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture()
def summaries(memory_store):
    return TurnSummaryStore(memory_store)
