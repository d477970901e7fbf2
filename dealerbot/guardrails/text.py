"""Text utilities for outbound responses.

``sanitize`` is the normalization applied to every message before delivery;
``finalize`` additionally enforces the channel's voice: at most three
sentences, at most one question and a call-to-action.
"""

from __future__ import annotations

import hashlib
import random
import re

EMOJI = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF"
    "\U00002600-\U000026FF"
    "\U00002700-\U000027BF"
    "\U0001F900-\U0001F9FF"
    "\U0001FA00-\U0001FAFF"
    "\U0000FE0F\U0000200D"
    "]"
)
LIST_MARKERS = re.compile(r"^(?:[ \t]*\d{1,2}[.)][ \t]+)+", re.MULTILINE)
SPACE_BEFORE_PUNCTUATION = re.compile(r"\s+([,.!?])")
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

MAX_SENTENCES = 3

CTA_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\?$",
        r"o que (tu |você )?acha",
        r"quer (que eu|ver|saber)",
        r"te (interessa|chamou)",
        r"posso te",
        r"me (conta|diz|fala)",
        r"\bvamos\b",
        r"\bbora\b",
        r"\bfechou\b",
        r"beleza\??$",
        r"topa\??$",
        r"combina(do)?\??$",
        r"precisando",
        r"qualquer (coisa|dúvida)",
        r"é só (me )?chamar",
        r"tô (aqui|por aqui)",
    )
]

QUESTION_CTAS = (
    "O que tu acha?",
    "Te interessa?",
    "Quer ver mais opções?",
    "Posso te ajudar com algo mais?",
    "Quer saber mais?",
    "Bora conferir?",
    "Quer que eu busque algo específico?",
)
STATEMENT_CTAS = (
    "É só me chamar.",
    "Tô por aqui pra te ajudar.",
    "Qualquer dúvida, é só chamar.",
    "Me conta o que tu procura.",
)


def strip_emojis(text: str) -> str:
    return EMOJI.sub("", text)


def collapse_whitespace(text: str) -> str:
    return SPACE_BEFORE_PUNCTUATION.sub(r"\1", " ".join(text.split()))


def sanitize(text: str) -> str:
    """Remove emoji and numbered-menu markers, then collapse whitespace. Idempotent.

    Collapsing "1 . Onix" yields a fresh "1. " marker, so both steps repeat
    until the text stops changing.
    """

    text = strip_emojis(text)
    previous = None
    while text != previous:
        previous = text
        text = collapse_whitespace(LIST_MARKERS.sub("", text))
    return text


def split_sentences(text: str) -> list[str]:
    return [part for part in SENTENCE_BOUNDARY.split(text.strip()) if part.strip()]


def count_sentences(text: str) -> int:
    return len(split_sentences(text))


def count_questions(text: str) -> int:
    return text.count("?")


def count_emojis(text: str) -> int:
    return len(EMOJI.findall(text))


def truncate_to_one_question(text: str) -> str:
    """Keep the first question and every non-question sentence, in order."""

    kept: list[str] = []
    asked = False
    for sentence in split_sentences(text):
        if "?" not in sentence:
            kept.append(sentence)
        elif not asked:
            asked = True
            if sentence.count("?") > 1:
                sentence = sentence[: sentence.index("?") + 1]
            kept.append(sentence)
    return " ".join(kept).strip()


def cap_sentences(text: str, limit: int = MAX_SENTENCES) -> str:
    return " ".join(split_sentences(text)[:limit])


def has_cta(text: str) -> bool:
    stripped = text.strip()
    return bool(stripped) and any(pattern.search(stripped) for pattern in CTA_PATTERNS)


def add_cta(text: str, rng: random.Random | None = None) -> str:
    """Append a default call-to-action; a statement when the text already asks something."""

    options = STATEMENT_CTAS if "?" in text else QUESTION_CTAS
    cta = (rng or random).choice(options)
    trimmed = text.strip()
    if not trimmed:
        return cta
    if trimmed[-1] not in ".!?":
        trimmed += "."
    return f"{trimmed} {cta}"


def finalize(text: str, rng: random.Random | None = None) -> str:
    """Sanitize and bring ``text`` within the channel's sentence, question and CTA rules."""

    result = truncate_to_one_question(sanitize(text))
    result = cap_sentences(result, MAX_SENTENCES)
    if not has_cta(result):
        result = add_cta(cap_sentences(result, MAX_SENTENCES - 1), rng)
    return result


def is_compliant(text: str) -> bool:
    return (
        count_sentences(text) <= MAX_SENTENCES
        and count_questions(text) <= 1
        and count_emojis(text) == 0
        and has_cta(text)
    )


def normalize_for_similarity(text: str) -> str:
    return " ".join(re.sub(r"[^\w\s]", "", text.lower()).split())


def _trigrams(text: str) -> set[str]:
    return {text[i : i + 3] for i in range(len(text) - 2)}


def similarity(first: str, second: str) -> float:
    """Character-trigram Jaccard similarity of the normalized texts, in [0, 1]."""

    a, b = normalize_for_similarity(first), normalize_for_similarity(second)
    if a == b:
        return 1.0
    grams_a, grams_b = _trigrams(a), _trigrams(b)
    if not grams_a or not grams_b:
        return 0.0
    shared = len(grams_a & grams_b)
    return shared / (len(grams_a) + len(grams_b) - shared)


def simple_hash(text: str) -> str:
    """Stable digest of the text with case and punctuation ignored."""

    normalized = re.sub(r"\W", "", text.lower())
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]
