"""Application layer: event storage, repositories and the command bus."""

from .bus import CommandBus, CommandHandler, DelegateToAggregate
from .repository import AggregateFactory, AggregateRepository
from .store import EventStore, InMemoryEventStore

__all__ = [
    "AggregateFactory",
    "AggregateRepository",
    "CommandBus",
    "CommandHandler",
    "DelegateToAggregate",
    "EventStore",
    "InMemoryEventStore",
]
