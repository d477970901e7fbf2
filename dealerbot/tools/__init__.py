"""Collaborator exports."""

from .base import Car, CarRepository, ChatMessage, Completion, MessageBus, Reasoner, SearchFilters
from .gateway import EvolutionMessageBus, LoggingMessageBus
from .inventory import HttpCarRepository, StaticCarRepository
from .reasoner import ChatCompletionsReasoner, OfflineReasoner

__all__ = [
    "Car",
    "CarRepository",
    "ChatMessage",
    "Completion",
    "MessageBus",
    "Reasoner",
    "SearchFilters",
    "EvolutionMessageBus",
    "LoggingMessageBus",
    "HttpCarRepository",
    "StaticCarRepository",
    "ChatCompletionsReasoner",
    "OfflineReasoner",
]
