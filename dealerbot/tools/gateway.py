"""Outbound message delivery."""

from __future__ import annotations

import logging

import httpx

from dealerbot.core.errors import UpstreamError
from dealerbot.tools.base import MessageBus


class EvolutionMessageBus(MessageBus):
    """WhatsApp delivery through an Evolution-style HTTP gateway."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        instance: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/message/sendText/{instance}"
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger("dealerbot.gateway")

    async def send(self, to: str, text: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._url,
                headers={"apikey": self._api_key},
                json={"number": to, "text": text},
            )
        if response.is_error:
            raise UpstreamError(f"gateway returned {response.status_code}", status_code=response.status_code)
        self._logger.info("Delivered %s chars to %s", len(text), to)


class LoggingMessageBus(MessageBus):
    """Used when no gateway is configured; records what would have been sent."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._logger = logging.getLogger("dealerbot.gateway")

    async def send(self, to: str, text: str) -> None:
        self.sent.append((to, text))
        self._logger.info("[dry-run] to=%s text=%s", to, text)
