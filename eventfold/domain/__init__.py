"""Domain primitives for event-sourced aggregates.

- Aggregate: Base class whose state is the fold of its event log
- Command: Base class for requests to change an aggregate
- Event: Immutable envelope around a typed event payload
- ValidationError, UnknownEventType, ConcurrencyError: domain exceptions
"""

from .aggregate import Aggregate
from .command import Command
from .event import Event, utc_now
from .exceptions import ConcurrencyError, UnknownEventType, ValidationError

__all__ = [
    "Aggregate",
    "Command",
    "Event",
    "utc_now",
    "ConcurrencyError",
    "UnknownEventType",
    "ValidationError",
]
