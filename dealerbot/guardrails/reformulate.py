"""Rewrites a candidate response through the reasoner, following one instruction."""

from __future__ import annotations

import logging

from dealerbot.core.errors import StoreError, UpstreamError
from dealerbot.guardrails.text import simple_hash
from dealerbot.memory.store import KeyValueStore
from dealerbot.tools.base import ChatMessage, Reasoner

logger = logging.getLogger("dealerbot.reformulate")

SYSTEM_PROMPT = (
    "Você reescreve mensagens de um vendedor de carros seguindo uma instrução. "
    "Mantenha o tom amigável e informal, sem emojis, em no máximo 3 frases e com no máximo 1 pergunta. "
    "Responda apenas com a mensagem reescrita."
)

CACHE_TTL_SECONDS = 3600


class Reformulator:
    """Reasoner-backed rewriting with a one-hour result cache.

    Raises :class:`UpstreamError` when the reasoner fails or returns nothing
    usable; callers decide on the local fallback.
    """

    def __init__(
        self,
        reasoner: Reasoner,
        *,
        temperature: float = 0.7,
        max_tokens: int = 200,
        cache: KeyValueStore | None = None,
    ) -> None:
        self._reasoner = reasoner
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._cache = cache

    async def reformulate(self, text: str, instruction: str, *, temperature: float | None = None) -> str:
        key = f"reformulate:{simple_hash(text + instruction)}:{temperature or self._temperature}"
        cached = await self._cached(key)
        if cached:
            logger.debug("Reformulation cache hit")
            return cached

        messages = [
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(role="user", content=f"INSTRUÇÃO: {instruction}\n\nMENSAGEM ORIGINAL:\n{text}"),
        ]
        completion = await self._reasoner.complete(
            messages,
            temperature=self._temperature if temperature is None else temperature,
            max_tokens=self._max_tokens,
        )
        rewritten = completion.content.strip()
        if not rewritten:
            raise UpstreamError("reformulation came back empty")

        if rewritten != text:
            await self._store(key, rewritten)
        return rewritten

    async def _cached(self, key: str) -> str | None:
        if self._cache is None:
            return None
        try:
            value = await self._cache.get(key)
        except StoreError:
            logger.warning("Reformulation cache unavailable", exc_info=True)
            return None
        return value if isinstance(value, str) else None

    async def _store(self, key: str, value: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.put(key, value, ttl_seconds=CACHE_TTL_SECONDS)
        except StoreError:
            logger.warning("Reformulation not cached", exc_info=True)
