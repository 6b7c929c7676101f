"""eventfold - event-sourced aggregates for Python.

This module provides the public API.
"""

from .application import (
    AggregateFactory,
    AggregateRepository,
    CommandBus,
    EventStore,
    InMemoryEventStore,
)
from .config import EventfoldSettings, UnknownEventPolicy, get_settings
from .domain import (
    Aggregate,
    Command,
    ConcurrencyError,
    Event,
    UnknownEventType,
    ValidationError,
)
from .routing import applies_event, handles_command, intercepts

__all__ = [
    # Domain primitives
    "Aggregate",
    "Command",
    "Event",
    # Errors
    "ConcurrencyError",
    "UnknownEventType",
    "ValidationError",
    # Configuration
    "EventfoldSettings",
    "UnknownEventPolicy",
    "get_settings",
    # Application
    "AggregateFactory",
    "AggregateRepository",
    "CommandBus",
    "EventStore",
    "InMemoryEventStore",
    # Decorators
    "applies_event",
    "handles_command",
    "intercepts",
]
