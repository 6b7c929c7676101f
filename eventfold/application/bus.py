"""Command bus routing commands to aggregates through middleware."""

from collections.abc import Callable, Coroutine
from functools import reduce
from typing import Any, TypeVar

from ..config import EventfoldSettings, get_settings
from ..domain import Aggregate, Command
from .middleware import (
    ConcurrencyRetryMiddleware,
    ContextPropagationMiddleware,
    LoggingMiddleware,
    Middleware,
)
from .repository import AggregateRepository

T = TypeVar("T")

CommandHandler = Callable[[Command[Any]], Coroutine[Any, Any, Any]]


class DelegateToAggregate:
    """Final handler: acquires the target aggregate and lets it handle the command."""

    def __init__(self, repositories: list[AggregateRepository[Any]]):
        self.repositories: dict[type[Command[Any]], AggregateRepository[Any]] = {}
        for repository in repositories:
            self.add(repository)

    def add(self, repository: AggregateRepository[Any]) -> None:
        aggregate_type: type[Aggregate] = repository.aggregate_type
        for command_type in aggregate_type._command_router.registered_types():
            if command_type in self.repositories:
                raise ValueError(
                    f"{command_type.__name__} is already handled by "
                    f"{self.repositories[command_type].aggregate_type.__name__}"
                )
            self.repositories[command_type] = repository

    async def handle(self, command: Command[T]) -> T:
        repository = self.repositories.get(type(command))
        if repository is None:
            raise NotImplementedError(
                f"No aggregate registered for command type {type(command).__name__}"
            )
        async with repository.acquire(command.aggregate_id) as aggregate:
            return aggregate.handle(command)


class CommandBus:
    """Dispatches commands through middleware to the aggregate that handles them.

    Middleware runs in the order given, outermost first.

    Examples:
        >>> store = InMemoryEventStore()
        >>> users = AggregateRepository(AggregateFactory(User), store)
        >>> bus = CommandBus.from_settings([users])
        >>> await bus.dispatch(ChangeEmail(aggregate_id=user_id, value="a@example.com"))
    """

    def __init__(
        self,
        repositories: list[AggregateRepository[Any]],
        middleware: list[Middleware] | None = None,
    ):
        self.root_handler = DelegateToAggregate(repositories)
        self.middleware = list(middleware or [])
        self.chain: CommandHandler = reduce(
            lambda next, mw: lambda cmd, n=next, m=mw: m.intercept(cmd, n),
            reversed(self.middleware),
            self.root_handler.handle,
        )

    @classmethod
    def from_settings(
        cls,
        repositories: list[AggregateRepository[Any]],
        settings: EventfoldSettings | None = None,
    ) -> "CommandBus":
        """Build a bus with the standard middleware configured from settings."""
        settings = settings or get_settings()
        return cls(
            repositories,
            middleware=[
                ContextPropagationMiddleware(),
                LoggingMiddleware(settings.log_level),
                ConcurrencyRetryMiddleware(settings.retry_max_attempts, settings.retry_delay),
            ],
        )

    async def dispatch(self, command: Command[T]) -> T:
        return await self.chain(command)
