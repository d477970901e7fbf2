"""Turn pipeline: one inbound customer message in, one policy-compliant reply out.

classify -> rule gate -> FAQ -> seller handoff -> inventory search + reasoner
-> policy enforcement -> repetition guard -> persist -> deliver.

Each stage may end the turn early. Whatever happens, the customer receives a
reply: a scripted one, a repaired candidate, or the static unavailability
message when the reasoner cannot be reached.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from dealerbot.core.errors import UpstreamError
from dealerbot.core.metrics import MetricsCollector
from dealerbot.guardrails import text as texts
from dealerbot.guardrails.policy import PolicyContext, ResponsePolicyEnforcer, mentions_name
from dealerbot.guardrails.repetition import RepetitionGuard
from dealerbot.memory.models import LastAction, ResponseRecord, Stage, TurnSummary, utcnow
from dealerbot.memory.summary import TurnSummaryStore
from dealerbot.planner.classifier import IntentClassifier
from dealerbot.planner.faq import FAQMatcher, StoreHours
from dealerbot.planner.rules import PROTECTED_INTENTS, RuleGate
from dealerbot.planner.types import DetectedIntent, FAQCategory, IntentType, RuleAction, RuleDecision
from dealerbot.tools.base import Car, CarRepository, ChatMessage, MessageBus, Reasoner, SearchFilters

logger = logging.getLogger("dealerbot.pipeline")

UNAVAILABLE_MESSAGE = (
    "Tô com uma instabilidade rápida aqui no sistema, mas já volto ao normal. "
    "Se preferir, posso te passar pra um consultor agora, quer?"
)
HANDOFF_OPEN_MESSAGE = "Vou te passar pra um dos nossos consultores, já já ele te chama por aqui. Beleza?"
HANDOFF_CLOSED_MESSAGE = (
    "Estamos fora do horário de atendimento agora, mas registrei teu interesse. "
    "Um consultor te chama assim que a loja abrir, combinado?"
)

SYSTEM_PROMPT = (
    "Você é o assistente virtual de vendas da {store}, uma loja de carros seminovos. "
    "Responda em português do Brasil, de forma curta, amigável e informal. "
    "Regras: no máximo 3 frases, no máximo 1 pergunta, sem emojis, sem listas numeradas, "
    "e sempre termine com uma chamada para ação. "
    "Nunca invente carros, preços ou condições que não estejam no contexto."
)

FAQ_SKIPPED_INTENTS = PROTECTED_INTENTS | {IntentType.EXTERNAL_LINK}
SEARCH_INTENTS = frozenset(
    {IntentType.CAR_SEARCH, IntentType.EXTERNAL_LINK, IntentType.PRICE_QUERY, IntentType.TRADE_IN}
)

SLOT_QUESTIONS = {
    "budget": re.compile(
        r"(quanto|qual)\s*(tu\s*|você\s*)?(quer|pode|pretende)?\s*(investir|pagar|gastar)|faixa de pre[çc]o|or[çc]amento",
        re.IGNORECASE,
    ),
    "model": re.compile(r"(qual|que)\s*(modelo|tipo de carro|carro)", re.IGNORECASE),
    "trade_in": re.compile(r"(carro|ve[ií]culo)\s*(pra|para|na)\s*troca|dar na troca", re.IGNORECASE),
    "year": re.compile(r"(qual|que)\s*ano", re.IGNORECASE),
}


class TurnSource(str, Enum):
    RULE = "rule"
    FAQ = "faq"
    HANDOFF = "handoff"
    REASONER = "reasoner"
    FALLBACK = "fallback"


@dataclass(slots=True)
class InboundMessage:
    user_id: str
    text: str
    sender_name: str | None = None
    received_at: datetime | None = None


@dataclass(slots=True)
class TurnResult:
    user_id: str
    response: str
    intent: DetectedIntent
    source: TurnSource
    rule_action: RuleAction | None = None
    faq_category: FAQCategory | None = None
    cars: list[Car] = field(default_factory=list)
    violations: list[str] = field(default_factory=list)
    was_reformulated: bool = False
    name_used: bool = False
    delivered: bool = False


def asked_slots_in(response: str) -> set[str]:
    """Slots the bot asked about in its own questions."""

    questions = [sentence for sentence in texts.split_sentences(response) if "?" in sentence]
    return {slot for slot, pattern in SLOT_QUESTIONS.items() for question in questions if pattern.search(question)}


def next_stage(summary: TurnSummary, intent: DetectedIntent) -> Stage:
    model = intent.extracted_data.car_model or ""
    if "|" in model:
        return Stage.COMPARING
    if intent.type in (IntentType.SELLER_REQUEST, IntentType.APPOINTMENT):
        return Stage.READY
    if intent.type is IntentType.COMPLAINT:
        return Stage.OBJECTION
    return summary.stage


def merge_known_slots(summary: TurnSummary, intent: DetectedIntent) -> tuple[dict[str, Any], bool]:
    """Return the updated slot values and whether the car preference changed."""

    data = intent.extracted_data
    stated = {
        "model": data.car_model,
        "brand": data.car_brand,
        "price_min": data.price_min,
        "price_max": data.price_max,
        "year": data.year,
    }
    known = dict(summary.known_slots)
    changed = False
    for slot, value in stated.items():
        if value is None:
            continue
        if slot in ("model", "brand") and known.get(slot) not in (None, value):
            changed = True
        known[slot] = value
    return known, changed


def first_name(sender_name: str | None) -> str | None:
    if not sender_name:
        return None
    parts = sender_name.strip().split()
    return parts[0].capitalize() if parts and len(parts[0]) > 1 else None


class TurnPipeline:
    """Stateless per-message orchestration; all state lives in the summary store."""

    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        rules: RuleGate,
        faq: FAQMatcher,
        summaries: TurnSummaryStore,
        reasoner: Reasoner,
        enforcer: ResponsePolicyEnforcer,
        repetition: RepetitionGuard,
        bus: MessageBus,
        inventory: CarRepository | None = None,
        metrics: MetricsCollector | None = None,
        hours: StoreHours | None = None,
        store_name: str = "loja",
        seller_phone: str | None = None,
        passive_window_minutes: int = 30,
        inventory_max_results: int = 3,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self.classifier = classifier
        self.rules = rules
        self.faq = faq
        self.summaries = summaries
        self.reasoner = reasoner
        self.enforcer = enforcer
        self.repetition = repetition
        self.bus = bus
        self.inventory = inventory
        self.metrics = metrics or MetricsCollector()
        self.hours = hours or faq.hours
        self.store_name = store_name
        self.seller_phone = seller_phone
        self.passive_window_minutes = passive_window_minutes
        self.inventory_max_results = inventory_max_results
        self._clock = clock
        self._rng = rng or random.Random()

    async def handle(self, message: InboundMessage, *, deliver: bool = True) -> TurnResult:
        now = message.received_at or self._clock()
        user_id = message.user_id
        summary = await self.summaries.load(user_id)
        history = await self.summaries.recent_responses(user_id)
        last_bot_message = history[0].text if history else None

        intent = self.classifier.classify(message.text)
        self.metrics.record_turn(intent.type.value)
        logger.info("Turn for %s: intent=%s confidence=%s", user_id, intent.type.value, intent.confidence.value)

        decision = self.rules.evaluate(message.text, intent, summary, now, last_bot_message)
        result = await self._short_circuit(message, intent, decision, now)
        if result is None:
            result = await self._generate(message, intent, decision, summary, last_bot_message, history, now)

        await self._persist(message, intent, summary, result, now)
        if deliver:
            result.delivered = await self._deliver(user_id, result.response)
        return result

    async def _short_circuit(
        self,
        message: InboundMessage,
        intent: DetectedIntent,
        decision: RuleDecision | None,
        now: datetime,
    ) -> TurnResult | None:
        if decision is not None and decision.skip_external_call and decision.response:
            self.metrics.record_short_circuit(f"rule:{decision.action.value}")
            return TurnResult(
                user_id=message.user_id,
                response=texts.finalize(decision.response, self._rng),
                intent=intent,
                source=TurnSource.RULE,
                rule_action=decision.action,
            )

        if decision is None and intent.type not in FAQ_SKIPPED_INTENTS:
            answer = self.faq.match(message.text, now)
            if answer is not None:
                self.metrics.record_short_circuit(f"faq:{answer.category.value}")
                return TurnResult(
                    user_id=message.user_id,
                    response=texts.finalize(answer.response, self._rng),
                    intent=intent,
                    source=TurnSource.FAQ,
                    faq_category=answer.category,
                )

        if intent.type is IntentType.SELLER_REQUEST:
            self.metrics.record_short_circuit("handoff")
            return await self._handoff(message, intent, now)
        return None

    async def _handoff(self, message: InboundMessage, intent: DetectedIntent, now: datetime) -> TurnResult:
        text = HANDOFF_OPEN_MESSAGE if self.hours.is_open(now) else HANDOFF_CLOSED_MESSAGE
        logger.info("Seller handoff for %s", message.user_id)
        if self.seller_phone:
            customer = message.sender_name or message.user_id
            note = f"Novo cliente pedindo atendimento: {customer} ({message.user_id}). Mensagem: {message.text}"
            try:
                await self.bus.send(self.seller_phone, note)
            except UpstreamError:
                logger.error("Seller notification failed for %s", message.user_id, exc_info=True)
        return TurnResult(
            user_id=message.user_id,
            response=texts.finalize(text, self._rng),
            intent=intent,
            source=TurnSource.HANDOFF,
        )

    async def _generate(
        self,
        message: InboundMessage,
        intent: DetectedIntent,
        decision: RuleDecision | None,
        summary: TurnSummary,
        last_bot_message: str | None,
        history: list[ResponseRecord],
        now: datetime,
    ) -> TurnResult:
        filters = self._search_filters(intent, decision)
        cars: list[Car] = []
        if filters is not None and self.inventory is not None:
            cars = await self.inventory.search(filters)

        prompt = self._prompt(message, summary, decision, last_bot_message, cars, searched=filters is not None)
        try:
            completion = await self.reasoner.complete(prompt)
        except UpstreamError as exc:
            logger.error("Reasoner unavailable for %s: %s", message.user_id, exc)
            self.metrics.record_fallback()
            return TurnResult(
                user_id=message.user_id,
                response=UNAVAILABLE_MESSAGE,
                intent=intent,
                source=TurnSource.FALLBACK,
                rule_action=decision.action if decision else None,
                cars=cars,
            )

        stage = next_stage(summary, intent)
        handoff_active = summary.handoff_active(now, self.passive_window_minutes)
        context = PolicyContext(
            summary=summary,
            user_message=message.text,
            turn_count=summary.turn_count + 1,
            handoff_active=handoff_active,
            passive_mode=handoff_active,
            last_bot_message=last_bot_message,
            customer_name=summary.customer_name or first_name(message.sender_name),
            state_changed=stage is not summary.stage or intent.type.value != summary.intent,
        )
        validation = await self.enforcer.enforce(completion.content, context)
        response = validation.response
        name_used = validation.name_used

        outcome = await self.repetition.check(response, history)
        if outcome.reformulated:
            response = texts.finalize(outcome.response, self._rng)
            name_used = mentions_name(response, context.customer_name)

        result = TurnResult(
            user_id=message.user_id,
            response=response,
            intent=intent,
            source=TurnSource.REASONER,
            rule_action=decision.action if decision else None,
            cars=cars,
            violations=validation.violations,
            was_reformulated=validation.was_reformulated or outcome.reformulated,
            name_used=name_used,
        )
        return result

    def _search_filters(self, intent: DetectedIntent, decision: RuleDecision | None) -> SearchFilters | None:
        data = intent.extracted_data
        if decision is not None and decision.action is RuleAction.TRADE_CONFIRM:
            return SearchFilters(price_min=decision.price_filter, limit=self.inventory_max_results)
        if intent.type not in SEARCH_INTENTS or data.is_empty():
            return None
        filters = SearchFilters(
            brand=data.car_brand,
            model=data.car_model,
            year_min=data.year,
            price_min=data.price_min,
            price_max=data.price_max,
            limit=self.inventory_max_results,
        )
        return None if filters.is_empty() else filters

    def _prompt(
        self,
        message: InboundMessage,
        summary: TurnSummary,
        decision: RuleDecision | None,
        last_bot_message: str | None,
        cars: list[Car],
        *,
        searched: bool,
    ) -> list[ChatMessage]:
        sections = [SYSTEM_PROMPT.format(store=self.store_name)]
        digest = TurnSummaryStore.build_context(summary)
        if digest:
            sections.append(digest)
        if searched:
            if cars:
                sections.append("ESTOQUE ENCONTRADO:\n" + "\n".join(f"- {car.describe()}" for car in cars))
            else:
                sections.append("ESTOQUE ENCONTRADO: nenhum carro para esse filtro. Ofereça alternativas parecidas.")
        if decision is not None and decision.response:
            sections.append(f"COMECE CONFIRMANDO: {decision.response}")

        messages = [ChatMessage(role="system", content="\n\n".join(sections))]
        if last_bot_message:
            messages.append(ChatMessage(role="assistant", content=last_bot_message))
        messages.append(ChatMessage(role="user", content=message.text))
        return messages

    async def _persist(
        self,
        message: InboundMessage,
        intent: DetectedIntent,
        summary: TurnSummary,
        result: TurnResult,
        now: datetime,
    ) -> None:
        known, preference_changed = merge_known_slots(summary, intent)
        asked = set() if preference_changed else set(summary.asked_slots)
        asked |= asked_slots_in(result.response)

        changes: dict[str, Any] = {
            "intent": intent.type.value,
            "stage": next_stage(summary, intent),
            "known_slots": known,
            "slots_filled": set(known),
            "asked_slots": asked,
            "last_action": self._last_action(result),
        }
        if result.source is TurnSource.HANDOFF:
            changes["handoff_at"] = now
        name = summary.customer_name or first_name(message.sender_name)
        if name:
            changes["customer_name"] = name
        if result.name_used:
            changes["name_last_used_turn"] = summary.turn_count + 1

        await self.summaries.save_turn(message.user_id, changes, now=now)
        await self.summaries.remember_response(message.user_id, result.response, texts.simple_hash(result.response), now)

    @staticmethod
    def _last_action(result: TurnResult) -> LastAction:
        if result.source is TurnSource.HANDOFF:
            return LastAction.SELLER
        if result.rule_action is RuleAction.GREETING:
            return LastAction.GREETING
        if result.source is TurnSource.FAQ:
            return LastAction.INFO
        if result.cars:
            return LastAction.CARS
        if "?" in result.response:
            return LastAction.ASK
        return LastAction.NONE

    async def _deliver(self, user_id: str, response: str) -> bool:
        try:
            await self.bus.send(user_id, response)
        except UpstreamError:
            logger.error("Delivery to %s failed", user_id, exc_info=True)
            return False
        return True
