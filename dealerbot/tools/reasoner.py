"""OpenAI-compatible chat-completions client."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from dealerbot.core.errors import UpstreamError
from dealerbot.tools.base import ChatMessage, Completion, Reasoner


class ChatCompletionsReasoner(Reasoner):
    """Chat completions over HTTP (OpenAI, OpenRouter or any compatible gateway)."""

    name = "reasoner"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.4,
        max_tokens: int = 300,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger("dealerbot.reasoner")

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        payload = {
            "model": self._model,
            "messages": [message.to_dict() for message in messages],
            "temperature": self._temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self._max_tokens,
        }
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, headers=headers, json=payload)
            if response.is_error:
                raise UpstreamError(
                    f"reasoner returned {response.status_code}",
                    status_code=response.status_code,
                )
            try:
                data = response.json()
            except ValueError as exc:
                raise UpstreamError("reasoner returned a non-JSON body") from exc

        content = _first_choice(data)
        if not content:
            raise UpstreamError("reasoner returned an empty completion")
        self._logger.debug("Completion of %s chars", len(content))
        return Completion(content=" ".join(content.split()), usage=data.get("usage") or {})


def _first_choice(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") or [{}]
    message = choices[0].get("message") or {}
    return str(message.get("content") or "").strip()


class OfflineReasoner(Reasoner):
    """Stands in when no API key is configured; every call fails fast."""

    name = "offline"

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        raise UpstreamError("no reasoner configured")
