"""Central test fixtures."""

import pytest
from ulid import ULID

from eventfold.application import AggregateFactory, AggregateRepository, InMemoryEventStore
from eventfold.config import get_settings
from eventfold.users import User
from tests.fixtures.test_app import ExecutionTracker, Playlist


@pytest.fixture
def aggregate_id() -> ULID:
    return ULID()


@pytest.fixture
def user(aggregate_id: ULID) -> User:
    """Alice, freshly created with an empty event log."""
    return User.create(aggregate_id, name="Alice", email="alice@example.com")


@pytest.fixture
def playlist(aggregate_id: ULID) -> Playlist:
    return Playlist.create(aggregate_id, name="Road trip")


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def user_repository(event_store: InMemoryEventStore) -> AggregateRepository[User]:
    return AggregateRepository(
        AggregateFactory(User, name="Alice", email="alice@example.com"),
        event_store,
    )


@pytest.fixture
def execution_tracker() -> ExecutionTracker:
    return ExecutionTracker()


@pytest.fixture(autouse=True)
def clear_execution_context():
    """Automatically clear execution context after each test."""
    yield
    from eventfold.context import clear_context

    clear_context()


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are re-read from the environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
