"""Collaborator interfaces consumed by the turn pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Sequence


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class Completion:
    """Reasoner output."""

    content: str
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchFilters:
    """Canonical inventory filters. ``model`` may hold ``"a|b"`` for comparisons."""

    brand: str | None = None
    model: str | None = None
    year_min: int | None = None
    year_max: int | None = None
    price_min: int | None = None
    price_max: int | None = None
    limit: int = 3

    def to_params(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def is_empty(self) -> bool:
        return not any(value is not None for key, value in asdict(self).items() if key != "limit")


@dataclass(slots=True)
class Car:
    brand: str
    model: str
    year: int | None = None
    price: int | None = None
    mileage: int | None = None
    version: str | None = None
    link: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Car":
        return cls(
            brand=str(payload.get("brand") or payload.get("marca") or ""),
            model=str(payload.get("model") or payload.get("modelo") or ""),
            year=_as_int(payload.get("year") or payload.get("ano")),
            price=_as_int(payload.get("price") or payload.get("preco")),
            mileage=_as_int(payload.get("mileage") or payload.get("km")),
            version=payload.get("version") or payload.get("versao"),
            link=payload.get("link") or payload.get("url"),
        )

    def describe(self) -> str:
        parts = [f"{self.brand} {self.model}".strip()]
        if self.version:
            parts.append(self.version)
        if self.year:
            parts.append(str(self.year))
        if self.mileage is not None:
            parts.append(f"{self.mileage:,} km".replace(",", "."))
        if self.price:
            parts.append(f"R$ {self.price:,}".replace(",", "."))
        return ", ".join(parts)


def _as_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class Reasoner(ABC):
    """Generative language backend."""

    name: str = "reasoner"

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        """Return a completion or raise :class:`~dealerbot.core.errors.UpstreamError`."""


class MessageBus(ABC):
    """Outbound delivery of final, policy-compliant text."""

    @abstractmethod
    async def send(self, to: str, text: str) -> None:
        """Deliver ``text`` to ``to``. Retries are the implementation's concern."""


class CarRepository(ABC):
    """Vehicle inventory lookup."""

    @abstractmethod
    async def search(self, filters: SearchFilters) -> list[Car]:
        """Return matching cars; callers do not validate the list further."""
