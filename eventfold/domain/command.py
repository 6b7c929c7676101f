"""Command base class for requesting changes to aggregates."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

TResponse = TypeVar("TResponse")


class Command(BaseModel, Generic[TResponse]):
    """Base class for all commands.

    A command is a request to change one aggregate. Unlike an event it may be
    rejected: the handling aggregate validates it and either emits events or
    raises.

    Type Parameters:
        TResponse: The type returned by the handler for this command.

    Attributes:
        aggregate_id: ID of the aggregate that should handle this command.
        correlation_id: Optional correlation ID for tracing.
        causation_id: Optional ID of what caused this command.
        command_id: Unique identifier for this command instance.

    Examples:
        >>> class ChangeEmail(Command[None]):
        ...     value: str
        >>>
        >>> class User(Aggregate):
        ...     @handles_command
        ...     def handle_change_email(self, cmd: ChangeEmail) -> None:
        ...         self.emit(EmailChanged(email=cmd.value))
    """

    model_config = ConfigDict(frozen=True)

    aggregate_id: ULID
    correlation_id: ULID | None = None
    causation_id: ULID | None = None
    command_id: ULID = Field(default_factory=ULID)
