import pytest

from dealerbot.core.errors import UpstreamError
from dealerbot.guardrails.reformulate import Reformulator
from dealerbot.guardrails.repetition import RepetitionGuard
from dealerbot.guardrails.text import simple_hash
from dealerbot.memory.models import ResponseRecord

SENT = "Temos o Onix 2022 por R$ 65.000. Quer agendar uma visita?"
CANDIDATE = "Temos o Onix 2022 por R$ 65 mil. Quer agendar uma visita?"


def history(*texts):
    return [ResponseRecord(hash=simple_hash(text), text=text) for text in texts]


def test_near_duplicate_is_detected():
    guard = RepetitionGuard()

    assert guard.is_duplicate(CANDIDATE, history(SENT)) is True
    assert guard.is_duplicate("temos o onix 2022 por r$ 65.000 quer agendar uma visita", history(SENT)) is True
    assert guard.is_duplicate("Qual o seu orçamento pra troca?", history(SENT)) is False


@pytest.mark.asyncio
async def test_reworded_offer_is_reformulated(make_reasoner):
    reasoner = make_reasoner(["O Onix 2022 tá por 65 mil e bem conservado. Bora ver de perto?"])
    guard = RepetitionGuard(Reformulator(reasoner))
    sent = history("Temos o Onix 2022 por R$ 65.000, ótimo estado.")
    candidate = "Temos o Onix 2022 por R$65.000 em ótimo estado!"

    assert guard.is_duplicate(candidate, sent) is True
    outcome = await guard.check(candidate, sent)

    assert outcome.reformulated is True
    assert len(reasoner.calls) == 1


def test_different_offer_is_not_a_repeat():
    guard = RepetitionGuard()

    assert guard.is_duplicate("Quer ver o Tracker 2023?", history("Temos o Onix 2022.")) is False


def test_only_the_window_is_compared():
    older = [f"Mensagem número {n} sobre outro assunto." for n in range(5)]
    guard = RepetitionGuard(window=5)

    assert guard.is_duplicate(CANDIDATE, history(*older, SENT)) is False


@pytest.mark.asyncio
async def test_duplicate_is_reformulated_once_at_high_temperature(make_reasoner):
    rewrite = "Olha, o Onix 2022 tá saindo por 65 mil. Bora marcar um horário pra ver?"
    reasoner = make_reasoner([rewrite])
    guard = RepetitionGuard(Reformulator(reasoner), temperature=0.9)

    outcome = await guard.check(CANDIDATE, history(SENT))

    assert outcome.response == rewrite
    assert outcome.duplicate is True
    assert outcome.reformulated is True
    assert len(reasoner.calls) == 1
    assert reasoner.calls[0]["temperature"] == 0.9


@pytest.mark.asyncio
async def test_failed_reformulation_keeps_the_candidate(make_reasoner):
    guard = RepetitionGuard(Reformulator(make_reasoner([UpstreamError("timeout")])))

    outcome = await guard.check(CANDIDATE, history(SENT))

    assert outcome.response == CANDIDATE
    assert outcome.duplicate is True
    assert outcome.reformulated is False


@pytest.mark.asyncio
async def test_fresh_response_is_left_alone(make_reasoner):
    reasoner = make_reasoner()
    guard = RepetitionGuard(Reformulator(reasoner))

    outcome = await guard.check(CANDIDATE, history("Oi! Me conta o que tu procura."))

    assert outcome.response == CANDIDATE
    assert outcome.duplicate is False
    assert reasoner.calls == []
