import json

import httpx
import pytest

from dealerbot.core.errors import UpstreamError
from dealerbot.tools.base import Car, ChatMessage, SearchFilters
from dealerbot.tools.gateway import EvolutionMessageBus
from dealerbot.tools.inventory import HttpCarRepository, StaticCarRepository
from dealerbot.tools.reasoner import ChatCompletionsReasoner, OfflineReasoner


def transport(handler, seen):
    def record(request):
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(record)


@pytest.mark.asyncio
async def test_reasoner_posts_chat_completions():
    seen = []
    reply = {"choices": [{"message": {"content": "  Temos o Onix.\n Quer ver?  "}}], "usage": {"total_tokens": 42}}
    reasoner = ChatCompletionsReasoner(
        "sk-test",
        base_url="https://llm.example.com/v1/",
        model="small-model",
        transport=transport(lambda request: httpx.Response(200, json=reply), seen),
    )

    completion = await reasoner.complete([ChatMessage("user", "tem onix?")], temperature=0.9)

    assert completion.content == "Temos o Onix. Quer ver?"
    assert completion.usage == {"total_tokens": 42}
    request = seen[0]
    assert str(request.url) == "https://llm.example.com/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "small-model"
    assert body["temperature"] == 0.9
    assert body["messages"] == [{"role": "user", "content": "tem onix?"}]


@pytest.mark.asyncio
async def test_reasoner_error_status_carries_the_code():
    reasoner = ChatCompletionsReasoner(
        "sk-test",
        transport=transport(lambda request: httpx.Response(503, json={"error": "busy"}), []),
    )

    with pytest.raises(UpstreamError) as excinfo:
        await reasoner.complete([ChatMessage("user", "oi")])
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_reasoner_empty_completion_is_an_error():
    reasoner = ChatCompletionsReasoner(
        "sk-test",
        transport=transport(lambda request: httpx.Response(200, json={"choices": []}), []),
    )

    with pytest.raises(UpstreamError):
        await reasoner.complete([ChatMessage("user", "oi")])


@pytest.mark.asyncio
async def test_offline_reasoner_always_fails():
    with pytest.raises(UpstreamError):
        await OfflineReasoner().complete([ChatMessage("user", "oi")])


@pytest.mark.asyncio
async def test_gateway_sends_text():
    seen = []
    bus = EvolutionMessageBus(
        "https://gateway.example.com",
        "secret",
        "loja",
        transport=transport(lambda request: httpx.Response(201, json={"status": "PENDING"}), seen),
    )

    await bus.send("5511999990000", "Oi! Quer ver?")

    request = seen[0]
    assert request.url.path == "/message/sendText/loja"
    assert request.headers["apikey"] == "secret"
    assert json.loads(request.content) == {"number": "5511999990000", "text": "Oi! Quer ver?"}


@pytest.mark.asyncio
async def test_gateway_error_is_raised():
    bus = EvolutionMessageBus(
        "https://gateway.example.com",
        "secret",
        "loja",
        transport=transport(lambda request: httpx.Response(500), []),
    )

    with pytest.raises(UpstreamError) as excinfo:
        await bus.send("5511999990000", "Oi")
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_http_inventory_sends_filters_and_parses_both_shapes(fixtures_dir):
    rows = json.loads((fixtures_dir / "inventory.json").read_text(encoding="utf-8"))
    seen = []
    repository = HttpCarRepository(
        "https://estoque.example.com/search",
        transport=transport(lambda request: httpx.Response(200, json={"cars": rows[:2]}), seen),
    )

    cars = await repository.search(SearchFilters(model="onix", price_max=70000, limit=1))

    assert cars == [Car.from_dict(rows[0])]
    assert seen[0].url.params["model"] == "onix"
    assert seen[0].url.params["price_max"] == "70000"
    assert "brand" not in seen[0].url.params

    bare_list = HttpCarRepository(
        "https://estoque.example.com/search",
        transport=transport(lambda request: httpx.Response(200, json=rows), []),
    )
    assert len(await bare_list.search(SearchFilters(limit=3))) == 3


@pytest.mark.asyncio
async def test_static_inventory_handles_comparisons(inventory):
    cars = await inventory.search(SearchFilters(model="onix|hb20", limit=5))

    assert sorted({car.model for car in cars}) == ["hb20", "onix"]
    assert await StaticCarRepository().search(SearchFilters(model="onix")) == []


def test_car_description():
    car = Car.from_dict({"marca": "CHEVROLET", "modelo": "onix", "ano": "2022", "preco": "65000.0", "km": 30000})

    assert car.describe() == "CHEVROLET onix, 2022, 30.000 km, R$ 65.000"
