"""Dataclasses representing per-user conversation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Funnel stage of a conversation."""

    CURIOUS = "curious"
    COMPARING = "comparing"
    OBJECTION = "objection"
    READY = "ready"


class LastAction(str, Enum):
    """Last thing the bot did for the customer."""

    CARS = "cars"
    SELLER = "seller"
    ASK = "ask"
    INFO = "info"
    GREETING = "greeting"
    NONE = "none"


LAST_ACTION_LABELS = {
    LastAction.CARS: "Mostrei veículos",
    LastAction.SELLER: "Encaminhei para vendedor",
    LastAction.ASK: "Fiz uma pergunta",
    LastAction.INFO: "Dei informação da loja",
    LastAction.GREETING: "Cumprimentei o cliente",
    LastAction.NONE: "Nenhuma",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(slots=True)
class TurnSummary:
    """Compact digest of a customer's conversation, refreshed every turn."""

    intent: str | None = None
    stage: Stage = Stage.CURIOUS
    slots_filled: set[str] = field(default_factory=set)
    asked_slots: set[str] = field(default_factory=set)
    last_action: LastAction = LastAction.NONE
    turn_count: int = 0
    updated_at: datetime | None = None
    known_slots: dict[str, Any] = field(default_factory=dict)
    handoff_at: datetime | None = None
    trade_in_value: int | None = None
    customer_name: str | None = None
    name_last_used_turn: int = 0

    @property
    def is_empty(self) -> bool:
        return self.turn_count == 0 and self.updated_at is None

    def handoff_active(self, now: datetime, window_minutes: int) -> bool:
        if self.handoff_at is None:
            return False
        return (now - self.handoff_at).total_seconds() < window_minutes * 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "stage": self.stage.value,
            "slots_filled": sorted(self.slots_filled),
            "asked_slots": sorted(self.asked_slots),
            "last_action": self.last_action.value,
            "turn_count": self.turn_count,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "known_slots": dict(self.known_slots),
            "handoff_at": self.handoff_at.isoformat() if self.handoff_at else None,
            "trade_in_value": self.trade_in_value,
            "customer_name": self.customer_name,
            "name_last_used_turn": self.name_last_used_turn,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TurnSummary":
        return cls(
            intent=payload.get("intent"),
            stage=Stage(payload.get("stage") or Stage.CURIOUS.value),
            slots_filled=set(payload.get("slots_filled") or []),
            asked_slots=set(payload.get("asked_slots") or []),
            last_action=LastAction(payload.get("last_action") or LastAction.NONE.value),
            turn_count=int(payload.get("turn_count") or 0),
            updated_at=_dt(payload.get("updated_at")),
            known_slots=dict(payload.get("known_slots") or {}),
            handoff_at=_dt(payload.get("handoff_at")),
            trade_in_value=payload.get("trade_in_value"),
            customer_name=payload.get("customer_name"),
            name_last_used_turn=int(payload.get("name_last_used_turn") or 0),
        )


@dataclass(slots=True)
class ResponseRecord:
    """A response that was delivered to a customer."""

    hash: str
    text: str
    at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "text": self.text, "at": self.at.isoformat()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ResponseRecord":
        return cls(hash=payload["hash"], text=payload["text"], at=datetime.fromisoformat(payload["at"]))
