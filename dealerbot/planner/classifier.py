"""Deterministic intent classifier built from an ordered list of matchers."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from dealerbot.core.errors import ClassificationError
from dealerbot.planner.base import IntentMatcher
from dealerbot.planner.extraction import (
    extract_brand,
    extract_model,
    extract_price_range,
    extract_year,
)
from dealerbot.planner.types import Confidence, DetectedIntent, ExtractedData, IntentType
from dealerbot.planner.vocabulary import (
    APPOINTMENT_KEYWORDS,
    COMPLAINT_KEYWORDS,
    GREETING_KEYWORDS,
    LINK_PATTERNS,
    PRICE_KEYWORDS,
    SELLER_KEYWORDS,
    STOCK_KEYWORDS,
    TRADE_IN_KEYWORDS,
)

logger = logging.getLogger("dealerbot.classifier")

GREETING_MAX_LENGTH = 20


def extract_slots(message: str, current_year: int | None = None) -> ExtractedData:
    model = extract_model(message)
    price = extract_price_range(message)
    return ExtractedData(
        car_model=model.model if model else None,
        car_brand=(model.brand if model and model.brand else None) or extract_brand(message),
        price_min=price[0] if price else None,
        price_max=price[1] if price else None,
        year=extract_year(message, current_year),
    )


class KeywordMatcher(IntentMatcher):
    """Matches when any keyword occurs in the lowercased message."""

    def __init__(
        self,
        intent: IntentType,
        keywords: Iterable[str],
        *,
        confidence: Confidence = Confidence.HIGH,
        with_slots: bool = False,
    ) -> None:
        self.intent = intent
        self.keywords = tuple(keywords)
        self.confidence = confidence
        self.with_slots = with_slots

    def match(self, text: str) -> DetectedIntent | None:
        lowered = text.lower().strip()
        if not any(keyword in lowered for keyword in self.keywords):
            return None
        slots = extract_slots(text) if self.with_slots else ExtractedData()
        return DetectedIntent(type=self.intent, confidence=self.confidence, extracted_data=slots)


class LinkMatcher(IntentMatcher):
    """Marketplace and social-media links shared from ads."""

    intent = IntentType.EXTERNAL_LINK

    def __init__(self, patterns: Sequence[str] = LINK_PATTERNS) -> None:
        self._patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    def match(self, text: str) -> DetectedIntent | None:
        if not any(pattern.search(text) for pattern in self._patterns):
            return None
        model = extract_model(text)
        data = ExtractedData(
            car_model=model.model if model else None,
            car_brand=(model.brand if model else None) or extract_brand(text),
        )
        return DetectedIntent(type=self.intent, confidence=Confidence.HIGH, extracted_data=data)


class CarSearchMatcher(IntentMatcher):
    """Any message naming a model, a brand or a price range."""

    intent = IntentType.CAR_SEARCH

    def __init__(self, current_year: int | None = None) -> None:
        self._current_year = current_year

    def match(self, text: str) -> DetectedIntent | None:
        data = extract_slots(text, self._current_year)
        has_price = data.price_min is not None or data.price_max is not None
        if not (data.car_model or data.car_brand or has_price):
            return None
        confidence = Confidence.HIGH if data.car_model else Confidence.MEDIUM
        return DetectedIntent(type=self.intent, confidence=confidence, extracted_data=data)


class GreetingMatcher(IntentMatcher):
    """Short greetings only; longer messages carry more than a hello."""

    intent = IntentType.GREETING

    def match(self, text: str) -> DetectedIntent | None:
        lowered = text.lower().strip()
        if len(lowered) >= GREETING_MAX_LENGTH:
            return None
        for keyword in GREETING_KEYWORDS:
            if lowered == keyword or lowered.startswith(keyword + " ") or lowered.endswith(" " + keyword):
                return DetectedIntent(type=self.intent, confidence=Confidence.HIGH)
        return None


def default_matchers(current_year: int | None = None) -> list[IntentMatcher]:
    """Matchers in priority order. The first one that matches wins."""

    return [
        LinkMatcher(),
        KeywordMatcher(IntentType.COMPLAINT, COMPLAINT_KEYWORDS),
        KeywordMatcher(IntentType.SELLER_REQUEST, SELLER_KEYWORDS),
        KeywordMatcher(IntentType.TRADE_IN, TRADE_IN_KEYWORDS, with_slots=True),
        KeywordMatcher(IntentType.APPOINTMENT, APPOINTMENT_KEYWORDS),
        KeywordMatcher(IntentType.PRICE_QUERY, PRICE_KEYWORDS, with_slots=True),
        CarSearchMatcher(current_year),
        GreetingMatcher(),
        KeywordMatcher(IntentType.STOCK_QUERY, STOCK_KEYWORDS, confidence=Confidence.MEDIUM),
    ]


class IntentClassifier:
    """Fold over the matchers; CONVERSATION/LOW when none applies."""

    def __init__(self, matchers: Sequence[IntentMatcher] | None = None) -> None:
        self.matchers = list(matchers) if matchers is not None else default_matchers()

    def classify(self, text: str) -> DetectedIntent:
        for matcher in self.matchers:
            try:
                detected = matcher.match(text)
            except ClassificationError:
                logger.warning("Matcher %s failed, skipping it", matcher.describe(), exc_info=True)
                continue
            if detected is not None:
                logger.debug("Intent %s via %s", detected.type.value, matcher.describe())
                return detected
        return DetectedIntent(type=IntentType.CONVERSATION, confidence=Confidence.LOW)

    def describe(self) -> str:
        return " > ".join(matcher.describe() for matcher in self.matchers)
