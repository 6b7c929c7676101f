import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from ulid import ULID

from ..domain import Aggregate
from .store import EventStore

LOGGER = logging.getLogger(__name__)

A = TypeVar("A", bound=Aggregate)


class AggregateFactory(Generic[A]):
    """Creates aggregates of one type in their initial state."""

    def __init__(self, aggregate_type: type[A], **initial_fields: Any):
        self._aggregate_type = aggregate_type
        self._initial_fields = initial_fields

    def get_type(self) -> type[A]:
        return self._aggregate_type

    def create(self, aggregate_id: ULID) -> A:
        return self._aggregate_type.create(aggregate_id, **self._initial_fields)


class AggregateRepository(Generic[A]):
    """Loads aggregates from an event store and saves what they emit.

    The repository has one main public method, ``acquire``. It rebuilds the
    aggregate by replaying its stream, hands it to the caller, and on a clean
    exit appends the uncommitted events to the store. Only one ``acquire``
    per aggregate identity runs at a time; callers for the same identity
    queue behind each other.

    Examples:
        >>> store = InMemoryEventStore()
        >>> users = AggregateRepository(AggregateFactory(User), store)
        >>> async with users.acquire(user_id) as user:
        ...     user.change("email", "alice@example.com")
    """

    __slots__ = ("aggregate_type", "aggregate_factory", "event_store", "_locks")

    def __init__(self, aggregate_factory: AggregateFactory[A], event_store: EventStore):
        self.aggregate_type = aggregate_factory.get_type()
        self.aggregate_factory = aggregate_factory
        self.event_store = event_store
        self._locks: weakref.WeakValueDictionary[ULID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, aggregate_id: ULID) -> asyncio.Lock:
        lock = self._locks.get(aggregate_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[aggregate_id] = lock
        return lock

    @asynccontextmanager
    async def acquire(self, aggregate_id: ULID) -> AsyncIterator[A]:
        async with self._lock_for(aggregate_id):
            aggregate = await self.load(aggregate_id)
            original_version = aggregate.version

            try:
                yield aggregate
            except Exception:
                # The instance is discarded, so nothing it emitted may be saved
                aggregate.clear_uncommitted_events()
                raise

            if aggregate.changed_since(original_version):
                await self._save(aggregate, original_version)

    async def load(self, aggregate_id: ULID) -> A:
        """Rebuild an aggregate from its full event stream."""
        events = await self.event_store.load_events(aggregate_id)
        aggregate = self.aggregate_factory.create(aggregate_id)
        return aggregate.replay(events)

    async def _save(self, aggregate: A, expected_version: int) -> None:
        if not (uncommitted_events := aggregate.get_uncommitted_events()):
            return
        event_count = len(uncommitted_events)
        await self.event_store.save_events(list(uncommitted_events), expected_version)
        aggregate.clear_uncommitted_events()
        LOGGER.debug(
            "Saved events",
            extra={
                "aggregate_type": self.aggregate_type.__name__,
                "aggregate_id": str(aggregate.id),
                "event_count": event_count,
                "version": aggregate.version,
            },
        )
