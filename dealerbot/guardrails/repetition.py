"""Guard against sending a customer the same response twice."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from dealerbot.core.errors import UpstreamError
from dealerbot.guardrails.reformulate import Reformulator
from dealerbot.guardrails.text import similarity, simple_hash
from dealerbot.memory.models import ResponseRecord

logger = logging.getLogger("dealerbot.repetition")

INSTRUCTION = (
    "Escreva uma resposta substancialmente diferente, com o mesmo sentido e a mesma chamada para ação. "
    "Não reutilize as frases da mensagem original."
)


@dataclass(slots=True)
class RepetitionOutcome:
    response: str
    duplicate: bool = False
    reformulated: bool = False


class RepetitionGuard:
    def __init__(
        self,
        reformulator: Reformulator | None = None,
        *,
        threshold: float = 0.75,
        window: int = 5,
        temperature: float = 0.9,
    ) -> None:
        self.reformulator = reformulator
        self.threshold = threshold
        self.window = window
        self.temperature = temperature

    def is_duplicate(self, candidate: str, history: Sequence[ResponseRecord]) -> bool:
        digest = simple_hash(candidate)
        for record in history[: self.window]:
            if record.hash == digest or similarity(candidate, record.text) > self.threshold:
                return True
        return False

    async def check(self, candidate: str, history: Sequence[ResponseRecord]) -> RepetitionOutcome:
        """Reformulate once on a duplicate. The rewrite is not checked again."""

        if not self.is_duplicate(candidate, history):
            return RepetitionOutcome(response=candidate)

        logger.info("Candidate repeats a recent response")
        if self.reformulator is None:
            return RepetitionOutcome(response=candidate, duplicate=True)
        try:
            rewritten = await self.reformulator.reformulate(candidate, INSTRUCTION, temperature=self.temperature)
        except UpstreamError as exc:
            logger.warning("Anti-repetition reformulation failed, keeping candidate: %s", exc)
            return RepetitionOutcome(response=candidate, duplicate=True)
        return RepetitionOutcome(response=rewritten, duplicate=True, reformulated=True)
