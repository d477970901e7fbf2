"""Rule gate: obvious turns answered without the language model."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime

from dealerbot.memory.models import TurnSummary
from dealerbot.planner.types import DetectedIntent, IntentType, RuleAction, RuleDecision

logger = logging.getLogger("dealerbot.rules")

POSTPONE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"amanh[ãa]\s*(a gente|falamos|conversamos|continua)",
        r"vou\s*dormir",
        r"depois\s*(falamos|conversamos|a gente)",
        r"agora\s*n[ãa]o\s*(posso|d[áa]|consigo)",
        r"t[áa]\s*na\s*hora\s*de\s*(eu\s*)?(dormir|descansar)",
        r"boa\s*noite.*descans",
        r"j[áa]\s*vou\s*(indo|nessa)",
        r"depois\s*te\s*(chamo|falo)",
    )
]

EXIT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"n[ãa]o\s*quero\s*mais",
        r"para\s*de\s*mandar",
        r"sai\s*da\s*minha",
        r"me\s*bloqueia",
        r"n[ãa]o\s*me\s*mande\s*mais",
        r"desist[io]",
        r"n[ãa]o\s*tenho\s*(mais\s*)?interesse",
    )
]

GREETING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(oi|ol[áa]|opa|e\s*a[íi]|eai|hey|hi)\s*[!?.]?$",
        r"^bom\s*dia\s*[!?.]?$",
        r"^boa\s*(tarde|noite)\s*[!?.]?$",
        r"^tudo\s*(bem|bom|certo)\s*[!?.]?$",
    )
]

ACKNOWLEDGMENT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(ok|beleza|blz|vlw|valeu|obrigad[oa]|show|massa|top)\s*[!?.]?$",
        r"^(sim|s|ss|isso|exato|certeza)\s*[!?.]?$",
        r"^(t[áa]\s*bom|tudo\s*certo|perfeito)\s*[!?.]?$",
    )
]

TRADE_CONFIRM_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(sim|s|ss|isso|exato|quero|bora|pode|ok|beleza)\s*[!?.,]?$",
        r"^(é\s*o\s*meu|é\s*meu|meu\s*mesmo)\s*[!?.,]?$",
        r"(pra\s*)?troca",
        r"usa(r)?\s*(como|esse)\s*base",
        r"mostra(r)?\s*(as\s*)?opç[õo]es",
        r"quero\s*ver",
    )
]

# Intents that must reach the reasoner even if a farewell pattern also matches.
PROTECTED_INTENTS = frozenset({IntentType.SELLER_REQUEST, IntentType.COMPLAINT})


@dataclass(slots=True)
class RuleResponses:
    """Scripted wording. Each list is sampled at random."""

    passive: list[str] = field(
        default_factory=lambda: [
            "Entendi! Me conta mais: tá procurando algo mais espaçoso ou compacto?",
            "Certo! Você já tem uma faixa de preço em mente? Assim já separo as melhores opções.",
            "Beleza! Você tem algum carro pra dar na troca? Isso pode ajudar bastante no seu novo.",
        ]
    )
    postpone: list[str] = field(
        default_factory=lambda: [
            "Tranquilo! Descansa bem, amanhã a gente continua. Quando quiser, é só chamar.",
            "Beleza! Boa noite, depois a gente se fala. Tô por aqui.",
            "Combinado! Fica tranquilo, amanhã continuamos. É só me chamar.",
        ]
    )
    exit: list[str] = field(
        default_factory=lambda: [
            "Entendi. Se mudar de ideia, é só chamar! Abraço!",
            "Tudo bem! Se um dia precisar de carro, é só me chamar. Abraço!",
        ]
    )
    greeting: list[str] = field(
        default_factory=lambda: [
            "Oi! Bora encontrar o carro ideal pra você! Tá buscando algo específico ou quer ver nossas novidades?",
            "Olá, tudo bem? Me conta: qual tipo de carro você tá procurando?",
            "E aí! Posso te ajudar a encontrar o carro perfeito. Já tem algum modelo em mente?",
        ]
    )
    trade_confirm: str = "Perfeito! Vou buscar opções que fazem sentido pra troca."


class RuleGate:
    """First-match-wins rules evaluated before any model call."""

    def __init__(
        self,
        responses: RuleResponses | None = None,
        *,
        passive_window_minutes: int = 30,
        rng: random.Random | None = None,
    ) -> None:
        self.responses = responses or RuleResponses()
        self.passive_window_minutes = passive_window_minutes
        self._rng = rng or random.Random()

    def evaluate(
        self,
        message: str,
        intent: DetectedIntent,
        summary: TurnSummary,
        now: datetime,
        last_bot_message: str | None = None,
    ) -> RuleDecision | None:
        text = message.strip()
        protected = intent.type in PROTECTED_INTENTS

        if summary.handoff_active(now, self.passive_window_minutes) and _any(ACKNOWLEDGMENT_PATTERNS, text):
            logger.info("Passive window acknowledgment")
            return RuleDecision(RuleAction.PASSIVE_ENGAGE, self._pick(self.responses.passive))

        if not protected and _any(POSTPONE_PATTERNS, text):
            logger.info("Postpone detected")
            return RuleDecision(RuleAction.POSTPONE, self._pick(self.responses.postpone))

        if not protected and _any(EXIT_PATTERNS, text):
            logger.info("Exit detected")
            return RuleDecision(RuleAction.EXIT, self._pick(self.responses.exit))

        if summary.trade_in_value and _any(TRADE_CONFIRM_PATTERNS, text):
            logger.info("Trade confirmed with valuation %s", summary.trade_in_value)
            return RuleDecision(
                RuleAction.TRADE_CONFIRM,
                self.responses.trade_confirm,
                skip_external_call=False,
                price_filter=summary.trade_in_value,
            )

        if not last_bot_message and _any(GREETING_PATTERNS, text):
            logger.info("Bare greeting on a fresh conversation")
            return RuleDecision(RuleAction.GREETING, self._pick(self.responses.greeting))

        return None

    def _pick(self, options: list[str]) -> str:
        return self._rng.choice(options)


def _any(patterns: list[re.Pattern[str]], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)
