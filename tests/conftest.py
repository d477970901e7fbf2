from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import pytest

from dealerbot.core.config import Settings
from dealerbot.core.errors import UpstreamError
from dealerbot.main import build_services
from dealerbot.memory.store import InMemoryKeyValueStore
from dealerbot.tools.base import Car, ChatMessage, Completion, Reasoner
from dealerbot.tools.gateway import LoggingMessageBus
from dealerbot.tools.inventory import StaticCarRepository


class FakeReasoner(Reasoner):
    """Replays scripted replies in order. An exception in the script is raised instead."""

    name = "fake"

    def __init__(self, replies: Sequence[str | Exception] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        self.calls.append({"messages": list(messages), "temperature": temperature, "max_tokens": max_tokens})
        if not self.replies:
            raise UpstreamError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return Completion(content=reply)


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def inbound_payload(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "inbound_message.json").read_text(encoding="utf-8"))


@pytest.fixture
def inventory_cars(fixtures_dir: Path) -> list[Car]:
    rows = json.loads((fixtures_dir / "inventory.json").read_text(encoding="utf-8"))
    return [Car.from_dict(row) for row in rows]


@pytest.fixture
def inventory(inventory_cars) -> StaticCarRepository:
    return StaticCarRepository(inventory_cars)


@pytest.fixture
def make_reasoner():
    return FakeReasoner


@pytest.fixture
def fixed_now() -> datetime:
    # Monday, 10:00 in America/Sao_Paulo.
    return datetime(2024, 6, 10, 13, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        kv_path=tmp_path / "dealerbot.db",
        reasoner_api_key=None,
        gateway_url=None,
        gateway_api_key=None,
        inventory_url=None,
        seller_phone=None,
    )


@pytest.fixture
def make_services(settings, inventory, fixed_now):
    """Build the full service graph on an in-memory store with scripted collaborators."""

    def factory(reasoner: Reasoner | None = None, bus=None, store=None, clock=None):
        return build_services(
            settings,
            store=store or InMemoryKeyValueStore(),
            reasoner=reasoner or FakeReasoner(),
            bus=bus or LoggingMessageBus(),
            inventory=inventory,
            clock=clock or (lambda: fixed_now),
        )

    return factory
