import pytest

from dealerbot.core.errors import UpstreamError
from dealerbot.guardrails.reformulate import Reformulator


@pytest.mark.asyncio
async def test_rewrites_are_cached(make_reasoner, memory_store):
    reasoner = make_reasoner(["Versão nova da mensagem. Bora?"])
    reformulator = Reformulator(reasoner, cache=memory_store)

    first = await reformulator.reformulate("Mensagem antiga. Quer ver?", "Reescreva.")
    second = await reformulator.reformulate("Mensagem antiga. Quer ver?", "Reescreva.")

    assert first == second == "Versão nova da mensagem. Bora?"
    assert len(reasoner.calls) == 1


@pytest.mark.asyncio
async def test_cache_expires_after_an_hour(make_reasoner, memory_store, clock):
    reasoner = make_reasoner(["Primeira. Bora?", "Segunda. Bora?"])
    reformulator = Reformulator(reasoner, cache=memory_store)

    await reformulator.reformulate("Texto. Quer?", "Reescreva.")
    clock.advance(3601)

    assert await reformulator.reformulate("Texto. Quer?", "Reescreva.") == "Segunda. Bora?"


@pytest.mark.asyncio
async def test_empty_rewrite_is_an_upstream_error(make_reasoner):
    reformulator = Reformulator(make_reasoner(["   "]))

    with pytest.raises(UpstreamError):
        await reformulator.reformulate("Texto. Quer?", "Reescreva.")


@pytest.mark.asyncio
async def test_explicit_temperature_is_forwarded(make_reasoner):
    reasoner = make_reasoner(["Outra coisa. Bora?"])

    await Reformulator(reasoner, temperature=0.7).reformulate("Texto. Quer?", "Reescreva.", temperature=0.9)

    assert reasoner.calls[0]["temperature"] == 0.9
    assert reasoner.calls[0]["max_tokens"] == 200
