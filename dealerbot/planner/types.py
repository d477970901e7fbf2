"""Planner-related enums and data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IntentType(str, Enum):
    """Supported customer intents, in no particular order."""

    CAR_SEARCH = "CAR_SEARCH"
    PRICE_QUERY = "PRICE_QUERY"
    SELLER_REQUEST = "SELLER_REQUEST"
    TRADE_IN = "TRADE_IN"
    APPOINTMENT = "APPOINTMENT"
    COMPLAINT = "COMPLAINT"
    EXTERNAL_LINK = "EXTERNAL_LINK"
    STOCK_QUERY = "STOCK_QUERY"
    GREETING = "GREETING"
    CONVERSATION = "CONVERSATION"


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(slots=True)
class ExtractedData:
    """Slots pulled out of a single message."""

    car_model: str | None = None
    car_brand: str | None = None
    price_min: int | None = None
    price_max: int | None = None
    year: int | None = None

    def is_empty(self) -> bool:
        return not any(
            value is not None
            for value in (self.car_model, self.car_brand, self.price_min, self.price_max, self.year)
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in {
                "car_model": self.car_model,
                "car_brand": self.car_brand,
                "price_min": self.price_min,
                "price_max": self.price_max,
                "year": self.year,
            }.items()
            if value is not None
        }


@dataclass(slots=True)
class DetectedIntent:
    """Classifier output for one message."""

    type: IntentType
    confidence: Confidence
    extracted_data: ExtractedData = field(default_factory=ExtractedData)


class RuleAction(str, Enum):
    """Short-circuit decisions produced by the rule gate."""

    PASSIVE_ENGAGE = "passive_engage"
    POSTPONE = "postpone"
    EXIT = "exit"
    TRADE_CONFIRM = "trade_confirm"
    GREETING = "greeting"


@dataclass(slots=True)
class RuleDecision:
    """Immediate decision from the rule gate.

    ``skip_external_call`` is False only for trade confirmations, which still
    need a vehicle search and a generated reply filtered by ``price_filter``.
    """

    action: RuleAction
    response: str | None
    skip_external_call: bool = True
    price_filter: int | None = None


class FAQCategory(str, Enum):
    FINANCING = "financing"
    HOURS = "hours"
    LOCATION = "location"
    WARRANTY = "warranty"
    TEST_DRIVE = "test_drive"
    PAYMENT = "payment"


@dataclass(slots=True)
class FAQAnswer:
    category: FAQCategory
    response: str
