from datetime import datetime, timezone

import pytest

from dealerbot.core.config import Settings
from dealerbot.core.errors import UpstreamError
from dealerbot.main import build_services
from dealerbot.memory.models import LastAction, Stage
from dealerbot.memory.store import InMemoryKeyValueStore
from dealerbot.pipeline import (
    HANDOFF_CLOSED_MESSAGE,
    HANDOFF_OPEN_MESSAGE,
    UNAVAILABLE_MESSAGE,
    InboundMessage,
    TurnSource,
    asked_slots_in,
)
from dealerbot.planner.types import FAQCategory, IntentType, RuleAction
from dealerbot.tools.base import MessageBus
from dealerbot.tools.gateway import LoggingMessageBus

USER = "5511999990000"
OFFER = "Temos o Onix 2022 LT por R$ 65.000. Quer agendar uma visita?"


class FailingBus(MessageBus):
    async def send(self, to, text):
        raise UpstreamError("gateway returned 502", status_code=502)


def message(text, **kwargs):
    return InboundMessage(user_id=USER, text=text, **kwargs)


@pytest.mark.asyncio
async def test_rule_turn_never_calls_the_reasoner(make_services, make_reasoner):
    reasoner = make_reasoner()
    bus = LoggingMessageBus()
    services = make_services(reasoner=reasoner, bus=bus)

    result = await services.pipeline.handle(message("vou dormir, amanhã a gente continua"))

    assert result.source is TurnSource.RULE
    assert result.rule_action is RuleAction.POSTPONE
    assert reasoner.calls == []
    assert bus.sent == [(USER, result.response)]
    assert result.delivered is True
    assert (await services.summaries.load(USER)).turn_count == 1


@pytest.mark.asyncio
async def test_faq_turn(make_services, make_reasoner):
    reasoner = make_reasoner()
    services = make_services(reasoner=reasoner)

    result = await services.pipeline.handle(message("qual o horário de sábado?"))

    assert result.source is TurnSource.FAQ
    assert result.faq_category is FAQCategory.HOURS
    assert result.response.startswith("No sábado a gente funciona das 9h às 17h.")
    assert reasoner.calls == []
    assert (await services.summaries.load(USER)).last_action is LastAction.INFO


@pytest.mark.asyncio
async def test_generated_turn_uses_inventory_and_context(make_services, make_reasoner, inventory):
    reasoner = make_reasoner([OFFER])
    services = make_services(reasoner=reasoner)

    result = await services.pipeline.handle(message("quero um onix", sender_name="Bruno Almeida"))

    assert result.source is TurnSource.REASONER
    assert result.intent.type is IntentType.CAR_SEARCH
    assert result.response == OFFER
    assert [car.year for car in result.cars] == [2022, 2019]
    assert inventory.queries[0].model == "onix"

    system = reasoner.calls[0]["messages"][0].content
    assert "ESTOQUE ENCONTRADO" in system
    assert "R$ 65.000" in system
    assert reasoner.calls[0]["messages"][-1].content == "quero um onix"

    summary = await services.summaries.load(USER)
    assert summary.turn_count == 1
    assert summary.known_slots == {"model": "onix", "brand": "CHEVROLET"}
    assert summary.last_action is LastAction.CARS
    assert summary.customer_name == "Bruno"
    assert [record.text for record in await services.summaries.recent_responses(USER)] == [OFFER]


@pytest.mark.asyncio
async def test_second_turn_sees_the_digest_and_last_reply(make_services, make_reasoner):
    reasoner = make_reasoner([OFFER, "O HB20 2021 Vision sai por R$ 61.000. Quer ver fotos?"])
    services = make_services(reasoner=reasoner)

    await services.pipeline.handle(message("quero um onix"))
    await services.pipeline.handle(message("e o hb20?"))

    messages = reasoner.calls[1]["messages"]
    assert "CONTEXTO DA CONVERSA:" in messages[0].content
    assert "TURNO: 1" in messages[0].content
    assert messages[1].role == "assistant"
    assert messages[1].content == OFFER


@pytest.mark.asyncio
async def test_reasoner_outage_sends_the_static_message(make_services, make_reasoner):
    reasoner = make_reasoner([UpstreamError("upstream rejected the request", status_code=400)])
    bus = LoggingMessageBus()
    services = make_services(reasoner=reasoner, bus=bus)

    result = await services.pipeline.handle(message("quero um onix"))

    assert result.source is TurnSource.FALLBACK
    assert result.response == UNAVAILABLE_MESSAGE
    assert bus.sent == [(USER, UNAVAILABLE_MESSAGE)]
    snapshot = services.metrics.snapshot()
    assert snapshot.fallbacks == 1
    assert snapshot.reasoner_failures == 1


@pytest.mark.asyncio
async def test_seller_request_hands_off_and_goes_passive(make_services, make_reasoner, fixed_now):
    reasoner = make_reasoner()
    bus = LoggingMessageBus()
    services = make_services(reasoner=reasoner, bus=bus)
    services.pipeline.seller_phone = "5511988887777"

    result = await services.pipeline.handle(message("quero falar com um vendedor", sender_name="Bruno"))

    assert result.source is TurnSource.HANDOFF
    assert result.response == HANDOFF_OPEN_MESSAGE
    assert bus.sent[0][0] == "5511988887777"
    assert bus.sent[1] == (USER, HANDOFF_OPEN_MESSAGE)

    summary = await services.summaries.load(USER)
    assert summary.handoff_at == fixed_now
    assert summary.stage is Stage.READY
    assert summary.last_action is LastAction.SELLER

    follow_up = await services.pipeline.handle(message("ok"))
    assert follow_up.rule_action is RuleAction.PASSIVE_ENGAGE
    assert reasoner.calls == []


@pytest.mark.asyncio
async def test_seller_request_outside_hours(make_services):
    evening = datetime(2024, 6, 10, 23, 0, tzinfo=timezone.utc)
    services = make_services(clock=lambda: evening)

    result = await services.pipeline.handle(message("quero falar com um vendedor"))

    assert result.response == HANDOFF_CLOSED_MESSAGE


@pytest.mark.asyncio
async def test_trade_confirmation_searches_from_the_valuation(make_services, make_reasoner, inventory):
    reasoner = make_reasoner(["Com a troca dá pra pegar um Onix 2022 ou um Polo 2020. Quer ver?"])
    services = make_services(reasoner=reasoner)
    await services.summaries.set_trade_in_value(USER, 60000)

    result = await services.pipeline.handle(message("sim"))

    assert result.rule_action is RuleAction.TRADE_CONFIRM
    assert result.source is TurnSource.REASONER
    assert inventory.queries[-1].price_min == 60000
    assert all(car.price >= 60000 for car in result.cars)
    assert "COMECE CONFIRMANDO" in reasoner.calls[0]["messages"][0].content


@pytest.mark.asyncio
async def test_repeat_of_an_older_reply_is_reformulated(make_services, make_reasoner):
    rewrite = "Olha, o Onix 2022 tá saindo por 65 mil. Bora marcar um horário pra ver?"
    reasoner = make_reasoner([OFFER, "Temos o Onix 2022 LT por R$ 65 mil. Quer agendar uma visita?", rewrite])
    services = make_services(reasoner=reasoner)

    await services.pipeline.handle(message("quero um onix"))
    await services.pipeline.handle(message("qual o horário de sábado?"))
    result = await services.pipeline.handle(message("e aquele onix?"))

    assert result.response == rewrite
    assert result.was_reformulated is True
    assert reasoner.calls[-1]["temperature"] == 0.9


@pytest.mark.asyncio
async def test_changing_the_model_clears_asked_slots(make_services, make_reasoner):
    reasoner = make_reasoner(
        [
            "Temos o Onix 2022 por R$ 65.000. Qual seu orçamento?",
            "O HB20 2021 Vision sai por R$ 61.000. Quer ver fotos?",
        ]
    )
    services = make_services(reasoner=reasoner)

    await services.pipeline.handle(message("quero um onix"))
    assert (await services.summaries.load(USER)).asked_slots == {"budget"}

    await services.pipeline.handle(message("e o hb20?"))
    summary = await services.summaries.load(USER)
    assert summary.asked_slots == set()
    assert summary.known_slots["model"] == "hb20"


@pytest.mark.asyncio
async def test_delivery_failure_is_reported_not_raised(make_services):
    services = make_services(bus=FailingBus())

    result = await services.pipeline.handle(message("vou dormir, amanhã a gente continua"))

    assert result.delivered is False


@pytest.mark.asyncio
async def test_deliver_can_be_skipped(make_services):
    bus = LoggingMessageBus()
    services = make_services(bus=bus)

    result = await services.pipeline.handle(message("oi"), deliver=False)

    assert result.rule_action is RuleAction.GREETING
    assert result.delivered is False
    assert bus.sent == []


def test_asked_slots_come_from_questions_only():
    assert asked_slots_in("Temos o Onix. Qual seu orçamento?") == {"budget"}
    assert asked_slots_in("Me fala o orçamento. Quer ver fotos?") == set()


@pytest.mark.asyncio
async def test_name_added_by_a_repetition_rewrite_is_recorded(make_services, make_reasoner):
    rewrite = "Bruno, o Onix 2022 tá saindo por 65 mil. Bora marcar um horário pra ver?"
    reasoner = make_reasoner([OFFER, "Temos o Onix 2022 LT por R$ 65 mil. Quer agendar uma visita?", rewrite])
    services = make_services(reasoner=reasoner)

    first = await services.pipeline.handle(message("quero um onix", sender_name="Bruno Almeida"))
    await services.pipeline.handle(message("qual o horário de sábado?", sender_name="Bruno Almeida"))
    result = await services.pipeline.handle(message("e aquele onix?", sender_name="Bruno Almeida"))

    assert first.name_used is False
    assert result.response == rewrite
    assert result.name_used is True
    assert (await services.summaries.load(USER)).name_last_used_turn == 3


@pytest.mark.asyncio
async def test_configured_hours_rules_and_wording_are_used(tmp_path, inventory, fixed_now, make_reasoner):
    configured = Settings(
        _env_file=None,
        kv_path=tmp_path / "dealerbot.db",
        reasoner_api_key=None,
        gateway_url=None,
        inventory_url=None,
        hours_special_rules=[
            {"label": "Feriado", "description": "dia 15 a loja fecha"},
            {"label": "Reforma", "description": "showroom fechado", "active": False},
        ],
        postpone_responses=["Tranquilo, amanhã a gente continua. É só me chamar."],
    )
    services = build_services(
        configured,
        store=InMemoryKeyValueStore(),
        reasoner=make_reasoner(),
        bus=LoggingMessageBus(),
        inventory=inventory,
        clock=lambda: fixed_now,
    )

    hours = await services.pipeline.handle(message("qual o horário de sábado?"), deliver=False)
    postpone = await services.pipeline.handle(message("vou dormir, amanhã a gente continua"), deliver=False)

    assert "Feriado: dia 15 a loja fecha" in hours.response
    assert "Reforma" not in hours.response
    assert postpone.response == "Tranquilo, amanhã a gente continua. É só me chamar."
