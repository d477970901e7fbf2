"""Slot extraction: car model, brand, price range and year.

All functions take the raw message and never raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterator

from .vocabulary import (
    BRANDS,
    MODEL_BRANDS,
    MODELS_BY_LENGTH,
    TYPO_CORRECTIONS,
)

TRADE_SCENARIO = re.compile(r"tenho|ela tem|ele tem|meu carro|minha .* é|quero trocar|na troca")

_ARTICLE = r"(?:(?:uma?|[ao]s?|uns|umas)\s+)?"
INTEREST_PATTERNS = (
    re.compile(r"quer(?:o|endo)?\s+" + _ARTICLE + r"([\w-]+)"),
    re.compile(r"olhando\s+" + _ARTICLE + r"([\w-]+)"),
    re.compile(r"procurando\s+" + _ARTICLE + r"([\w-]+)"),
    re.compile(r"interesse\s+(?:n[oa]s?\s+)?([\w-]+)"),
    re.compile(r"trocar\s+por\s+" + _ARTICLE + r"([\w-]+)"),
    re.compile(r"(?:comprar|pegar|adquirir)\s+" + _ARTICLE + r"([\w-]+)"),
)
SKIP_WORDS = frozenset({"um", "uma", "o", "a", "os", "as", "uns", "umas", "de", "da", "do", "pra", "para", "ver"})
INTEREST_MARKERS = ("quero", "quer ", "olhando", "procurando", "trocar por", "interesse")

GENERIC_QUERY = re.compile(r"(?:qual|quais|tem|vocês têm|voces tem|tem algum|ate|até)\s+(?:\d+\s*mil|carro|algo)")
CASUAL_CONTEXT = (
    re.compile(r"(?:anda|dirige|usa|pilota)\s+(?:num|numa|n'um|n'uma|um|uma)\s+"),
    re.compile(r"(?:avo|avô|avó|tio|tia|primo|prima|vizinho|amigo|pai|mae|mãe)\s+.*?\s+(?:tem|anda|dirige|usa)"),
    re.compile(r"(?:tem|tinha|possui)\s+(?:\d+\s+)?(?:gatos?|cachorros?|filhos?)"),
)
COMPARISON = re.compile(r"([\w-]+)\s+ou\s+(?:[ao]\s+)?([\w-]+)")

PRICE_UP_TO = re.compile(r"at[ée]\s*(\d+)\s*(mil|k|reais|conto)(?!\s*km)")
PRICE_RANGE = re.compile(r"de\s*(\d+)\s*a\s*(\d+)")
PRICE_THOUSANDS = re.compile(r"(\d+)\s*(?:mil\b|k\b)(?!\s*km)")
PRICE_CURRENCY = re.compile(r"r\$\s*(\d{1,3}(?:\.\d{3})+|\d+)")
YEAR = re.compile(r"(?<!\d)(20[0-2]\d|199\d)(?!\d)")


@dataclass(slots=True)
class ModelMatch:
    model: str
    brand: str | None


def normalize_text(message: str) -> str:
    """Lowercase, trim and apply common spelling corrections."""

    text = message.lower().strip()
    for typo, fixed in TYPO_CORRECTIONS.items():
        text = re.sub(rf"(?<![\w-]){re.escape(typo)}(?![\w-])", fixed, text)
    return text


def _pattern_for(model: str) -> re.Pattern[str]:
    # Whole words only, so "uno" never fires inside "bruno" nor "gol" inside "golpe".
    return re.compile(rf"(?<![\w-]){re.escape(model)}(?![\w-])")


_MODEL_PATTERNS = {model: _pattern_for(model) for model in MODELS_BY_LENGTH}


def _occurrences(model: str, text: str, offset: int = 0) -> Iterator[int]:
    for found in _MODEL_PATTERNS[model].finditer(text, offset):
        yield found.start()


def _model_at(text: str, position: int) -> str | None:
    for model in MODELS_BY_LENGTH:
        if not text.startswith(model, position):
            continue
        if any(start == position for start in _occurrences(model, text, position)):
            return model
    return None


def _first_in_text(text: str, offset: int = 0) -> str | None:
    best: tuple[int, int, str] | None = None
    for model in MODELS_BY_LENGTH:
        position = next(_occurrences(model, text, offset), None)
        if position is None:
            continue
        candidate = (position, -len(model), model)
        if best is None or candidate < best:
            best = candidate
    return best[2] if best else None


def _interest_model(text: str) -> str | None:
    for pattern in INTEREST_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        position = found.start(1)
        if found.group(1) in SKIP_WORDS:
            following = re.match(r"\s*([\w-]+)", text[found.end(1):])
            if not following:
                continue
            position = found.end(1) + following.start(1)
        model = _model_at(text, position)
        if model:
            return model

    marker = max(text.find(keyword) for keyword in INTEREST_MARKERS)
    if marker >= 0:
        return _first_in_text(text, marker)
    return None


def extract_model(message: str) -> ModelMatch | None:
    """Return the model the customer is interested in.

    Comparisons ("onix ou hb20") yield ``"onix|hb20"`` with no brand. When the
    customer talks about a car they already own, the model mentioned after an
    interest verb wins over the owned one.
    """

    text = normalize_text(message)

    comparison = COMPARISON.search(text)
    if comparison:
        left, right = comparison.group(1), comparison.group(2)
        if left in MODEL_BRANDS and right in MODEL_BRANDS and left != right:
            return ModelMatch(model=f"{left}|{right}", brand=None)

    if TRADE_SCENARIO.search(text):
        model = _interest_model(text)
        if model:
            return ModelMatch(model=model, brand=MODEL_BRANDS[model])

    generic_query = bool(GENERIC_QUERY.search(text))
    if generic_query and any(pattern.search(text) for pattern in CASUAL_CONTEXT):
        return None

    for model in MODELS_BY_LENGTH:
        if next(_occurrences(model, text), None) is None:
            continue
        casual = re.search(rf"(?:anda|dirige|usa)\s+(?:num|numa|n'um|n'uma|um|uma)\s+{re.escape(model)}", text)
        if casual and generic_query:
            continue
        return ModelMatch(model=model, brand=MODEL_BRANDS[model])
    return None


def extract_brand(message: str) -> str | None:
    text = normalize_text(message)
    for keyword, brand in BRANDS.items():
        if re.search(rf"(?<![\w-]){re.escape(keyword)}(?![\w-])", text):
            return brand
    return None


def extract_price_range(message: str) -> tuple[int | None, int | None] | None:
    """Return ``(min, max)`` in full currency units, or ``None``.

    Formats are tried in order: "até N mil", "de N a M", "N mil" and "R$ N.NNN".
    """

    text = message.lower()

    up_to = PRICE_UP_TO.search(text)
    if up_to:
        value = int(up_to.group(1))
        return None, value * 1000 if up_to.group(2) in ("mil", "k", "conto") else value

    between = PRICE_RANGE.search(text)
    if between:
        low, high = int(between.group(1)), int(between.group(2))
        if not (_looks_like_year(low) and _looks_like_year(high)):
            return _thousands(low), _thousands(high)

    thousands = PRICE_THOUSANDS.search(text)
    if thousands:
        return None, int(thousands.group(1)) * 1000

    currency = PRICE_CURRENCY.search(text)
    if currency:
        return None, int(currency.group(1).replace(".", ""))
    return None


def _thousands(value: int) -> int:
    return value * 1000 if value < 1000 else value


def _looks_like_year(value: int) -> bool:
    return 1990 <= value <= 2100


def extract_year(message: str, current_year: int | None = None) -> int | None:
    latest = (current_year or date.today().year) + 1
    found = YEAR.search(message)
    if found:
        year = int(found.group(1))
        if 1990 <= year <= latest:
            return year
    return None
