"""Response policy enforcement.

Every candidate response goes through a fixed sequence of checks. A check
that fires may ask the reformulator for exactly one rewrite; if the rewrite
fails or still violates the check, a local deterministic repair is used
instead. The name cooldown and passive-mode checks are always local. The
result is then finalized (emoji, whitespace, list markers, one question,
three sentences, call-to-action).
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Callable

from dealerbot.core.errors import UpstreamError, ValidationExhausted
from dealerbot.core.metrics import MetricsCollector
from dealerbot.guardrails import text as texts
from dealerbot.guardrails.reformulate import Reformulator
from dealerbot.memory.models import TurnSummary

logger = logging.getLogger("dealerbot.policy")

QUALIFICATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"qual\s*valor",
        r"quanto\s*(quer|pode)\s*investir",
        r"tem\s*carro\s*pra\s*troca",
        r"qual\s*modelo\s*te\s*interessa",
        r"qual\s*(é\s*)?o?\s*tipo\s*de\s*ve[ií]culo",
        r"que\s*tipo\s*de\s*carro",
        r"quanto\s*quer\s*pagar",
        r"qual\s*(é\s*)?seu\s*or[çc]amento",
        r"prefere\s*financiar",
        r"vai\s*dar\s*entrada",
    )
]

CONVERSATION_KILLERS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^beleza!?\s*(qualquer|qqer)?\s*coisa",
        r"^(ok|tá|ta|valeu)!?\s*(qualquer|qqer)?\s*coisa",
        r"qualquer\s*(coisa|dúvida).*tô\s*por\s*aqui",
        r"^entendi!?$",
        r"^show!?$",
        r"^beleza!?$",
        r"^ok!?$",
    )
]

NEW_CAR_INTEREST = re.compile(r"^(tem|quero|busco|procuro|quer|voces tem|vocês tem)\s+\w+", re.IGNORECASE)
CAR_COMPARISON = re.compile(
    r"(melhor|diferença|comparar|creta|tracker|compass|kicks|hb20|onix|argo|polo|t-cross|nivus|tcross"
    r"|corolla|civic|sentra|cruze|spin)",
    re.IGNORECASE,
)
CAR_VOCABULARY = re.compile(
    r"(carro|veículo|modelo|motor|consumo|espaço|porta-malas|banco|preço|km|quilometragem|ano)",
    re.IGNORECASE,
)

PASSIVE_MAX_LENGTH = 150

HANDOFF_CONFIRMATION = "O consultor já foi avisado e vai falar contigo em instantes. Tô por aqui se precisar."
ENGAGING_FALLBACK = "Me conta mais: tá buscando algo específico ou quer ver nossas novidades?"
PASSIVE_FALLBACK = "Entendi! Me conta mais: tá buscando algo específico ou quer ver nossas novidades?"

INSTRUCTIONS = {
    "handoff_qualification": (
        "Remova perguntas de qualificação. Apenas confirme e se coloque à disposição. O consultor já foi acionado."
    ),
    "similar_to_previous": (
        "Reformule de forma completamente diferente. Mude o ângulo, a estrutura e o vocabulário."
    ),
    "too_long": "Encurte para no máximo {limit} caracteres, mantendo só o essencial.",
    "conversation_killer": (
        "Esta resposta é genérica e encerra a conversa. Reformule de forma engajadora: faça uma pergunta relevante, "
        "ofereça algo específico ou dê uma dica útil sobre carros."
    ),
}


@dataclass(slots=True)
class PolicyContext:
    """What the enforcer knows about the turn being answered."""

    summary: TurnSummary
    user_message: str = ""
    turn_count: int = 1
    handoff_active: bool = False
    passive_mode: bool = False
    last_bot_message: str | None = None
    customer_name: str | None = None
    state_changed: bool = False


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    response: str
    was_reformulated: bool = False
    violations: list[str] = field(default_factory=list)
    name_used: bool = False


def has_qualification_question(text: str) -> bool:
    return any(pattern.search(text) for pattern in QUALIFICATION_PATTERNS)


def is_conversation_killer(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.search(stripped) for pattern in CONVERSATION_KILLERS)


def name_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE)


def mentions_name(text: str, name: str | None) -> bool:
    return bool(name and len(name) > 1 and name_pattern(name).search(text))


def strip_name(response: str, name: str) -> str:
    """Remove every occurrence of ``name`` and tidy the punctuation left behind."""

    cleaned = name_pattern(name).sub("", response)
    cleaned = re.sub(r"^[\s,]+", "", cleaned)
    cleaned = re.sub(r",\s*([.!?])", r"\1", cleaned)
    cleaned = re.sub(r"\s+,", ",", cleaned)
    cleaned = re.sub(r",{2,}", ",", cleaned)
    cleaned = texts.collapse_whitespace(cleaned)
    return cleaned[:1].upper() + cleaned[1:] if cleaned else cleaned


def name_allowed(context: PolicyContext, cooldown_turns: int) -> bool:
    turns_since = context.turn_count - context.summary.name_last_used_turn
    return context.turn_count <= 1 or turns_since >= cooldown_turns or context.state_changed


def drop_qualification_sentences(response: str) -> str:
    kept = [s for s in texts.split_sentences(response) if not has_qualification_question(s)]
    return " ".join(kept) if kept else HANDOFF_CONFIRMATION


def truncate_at_word(response: str, limit: int) -> str:
    if len(response) <= limit:
        return response
    cut = response[:limit]
    if " " in cut:
        cut = cut[: cut.rindex(" ")]
    return cut.rstrip(" ,;:") + "."


def user_needs_answer(message: str) -> bool:
    """A real question or car talk must be answered even in passive mode."""

    lowered = message.lower().strip()
    return (
        "?" in lowered
        or bool(NEW_CAR_INTEREST.search(lowered))
        or bool(CAR_COMPARISON.search(lowered))
        or bool(CAR_VOCABULARY.search(lowered))
    )


@dataclass(slots=True)
class _Check:
    name: str
    violated: Callable[[str, PolicyContext], bool]
    repair: Callable[[str, PolicyContext], str]


class ResponsePolicyEnforcer:
    """Fixed repair pipeline over candidate responses."""

    def __init__(
        self,
        reformulator: Reformulator | None = None,
        *,
        max_length: int = 500,
        length_margin: int = 50,
        similarity_threshold: float = 0.75,
        name_cooldown_turns: int = 5,
        rng: random.Random | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.reformulator = reformulator
        self.max_length = max_length
        self.length_margin = length_margin
        self.similarity_threshold = similarity_threshold
        self.name_cooldown_turns = name_cooldown_turns
        self._rng = rng or random.Random()
        self._metrics = metrics
        self._checks = [
            _Check("handoff_qualification", self._handoff_violation, lambda text, _: drop_qualification_sentences(text)),
            _Check("similar_to_previous", self._similarity_violation, lambda text, _: text),
            _Check("too_long", lambda text, _: len(text) > self.max_length, self._hard_truncate),
            _Check("conversation_killer", lambda text, _: is_conversation_killer(text), lambda *_: ENGAGING_FALLBACK),
        ]

    async def enforce(self, candidate: str, context: PolicyContext) -> ValidationResult:
        response = candidate
        violations: list[str] = []
        reformulated = False

        for check in self._checks:
            if not check.violated(response, context):
                continue
            violations.append(check.name)
            logger.info("Policy check %s fired", check.name)
            try:
                response = await self._rewrite(check, response, context)
                reformulated = True
            except ValidationExhausted as exc:
                logger.warning("%s; applying local repair", exc)
                if exc.candidate is not None:
                    reformulated = True
                response = check.repair(exc.candidate if exc.candidate is not None else response, context)

        name = context.customer_name or context.summary.customer_name
        if mentions_name(response, name):
            if not name_allowed(context, self.name_cooldown_turns):
                logger.info("Name cooldown active at turn %s, removing %r", context.turn_count, name)
                violations.append("name_cooldown")
                response = strip_name(response, name)

        if context.passive_mode and not user_needs_answer(context.user_message):
            if len(response) > PASSIVE_MAX_LENGTH or has_qualification_question(response):
                violations.append("passive_mode")
                response = PASSIVE_FALLBACK

        final = texts.finalize(response, self._rng)
        name_used = mentions_name(final, name)
        return ValidationResult(
            valid=texts.is_compliant(final),
            response=final,
            was_reformulated=reformulated,
            violations=violations,
            name_used=name_used,
        )

    async def _rewrite(self, check: _Check, response: str, context: PolicyContext) -> str:
        """One reformulation; raises :class:`ValidationExhausted` unless it clears the check."""

        if self.reformulator is None:
            raise ValidationExhausted(check.name)
        if self._metrics:
            self._metrics.record_reformulation(check.name)
        instruction = INSTRUCTIONS[check.name].format(limit=self.max_length)
        try:
            rewritten = await self.reformulator.reformulate(response, instruction)
        except UpstreamError as exc:
            logger.warning("Reformulation for %s failed: %s", check.name, exc)
            raise ValidationExhausted(check.name) from exc
        if check.violated(rewritten, context):
            raise ValidationExhausted(check.name, candidate=rewritten)
        return rewritten

    def _handoff_violation(self, response: str, context: PolicyContext) -> bool:
        return context.handoff_active and has_qualification_question(response)

    def _similarity_violation(self, response: str, context: PolicyContext) -> bool:
        if not context.last_bot_message:
            return False
        return texts.similarity(response, context.last_bot_message) > self.similarity_threshold

    def _hard_truncate(self, response: str, context: PolicyContext) -> str:
        return truncate_at_word(response, self.max_length + self.length_margin)
