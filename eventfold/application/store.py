"""Event store interface and the in-memory implementation."""

from abc import ABC, abstractmethod
from typing import Any

from ulid import ULID

from ..domain import ConcurrencyError, Event


class EventStore(ABC):
    """Append-only storage for aggregate event streams.

    A store is an explicit handle: it is created by the caller and passed to
    the repositories that use it, never held in process-wide state.
    """

    @abstractmethod
    async def save_events(self, events: list[Event[Any]], expected_version: int) -> None:
        """Append events to one aggregate's stream.

        Args:
            events: Events to append, all belonging to the same aggregate,
                in order.
            expected_version: Length of the stream the caller loaded. Used
                for optimistic locking.

        Raises:
            ConcurrencyError: If the stream has grown since it was loaded.
        """
        ...

    @abstractmethod
    async def load_events(self, aggregate_id: ULID, min_version: int = 1) -> list[Event[Any]]:
        """Load an aggregate's events with sequence_number >= min_version, in order."""
        ...


class InMemoryEventStore(EventStore):
    """Dictionary-backed event store.

    Suited to tests, examples and single-process use. Nothing survives a
    restart.
    """

    def __init__(self) -> None:
        self.by_aggregate_id: dict[ULID, list[Event[Any]]] = {}

    async def save_events(self, events: list[Event[Any]], expected_version: int) -> None:
        if not events:
            return

        aggregate_id = events[0].aggregate_id
        if any(event.aggregate_id != aggregate_id for event in events):
            raise ValueError("All events in one save must belong to the same aggregate")

        stream = self.by_aggregate_id.get(aggregate_id, [])
        if len(stream) != expected_version:
            raise ConcurrencyError(f"Expected version {expected_version}, got {len(stream)}")

        self.by_aggregate_id[aggregate_id] = stream + events

    async def load_events(self, aggregate_id: ULID, min_version: int = 1) -> list[Event[Any]]:
        return [
            event
            for event in self.by_aggregate_id.get(aggregate_id, [])
            if event.sequence_number >= min_version
        ]
