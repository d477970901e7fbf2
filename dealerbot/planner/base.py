"""Intent matcher abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .types import DetectedIntent, IntentType


class IntentMatcher(ABC):
    """Recognises a single intent category in a message.

    Matchers are pure: they only look at the text they are given and return
    ``None`` when their category does not apply.
    """

    intent: IntentType

    @abstractmethod
    def match(self, text: str) -> DetectedIntent | None:
        """Return the detected intent, or ``None`` to let the next matcher try."""

    def describe(self) -> str:
        return f"{type(self).__name__}({self.intent.value})"
