from datetime import datetime, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

T = TypeVar("T", bound=BaseModel)


def utc_now() -> datetime:
    """Get the current UTC timestamp.

    Used as default_factory for timestamps so events are recorded in UTC
    regardless of system timezone.
    """
    return datetime.now(tz=timezone.utc)


class Event(BaseModel, Generic[T]):
    """Immutable record of something that happened to an aggregate.

    An event pairs a strongly typed payload with the metadata needed to place
    it in an aggregate's history. Each payload class is one event kind, so
    the set of payload classes an aggregate applies is its event union and
    no runtime casting of an untyped payload is needed.

    Events are frozen: once created they cannot be modified, and aggregates
    only ever append them to their logs.

    Type Parameters:
        T: Pydantic model describing the event payload.

    Attributes:
        id: Unique identifier for this event instance.
        aggregate_id: ID of the aggregate the event belongs to.
        data: Typed payload (e.g., EmailChanged).
        sequence_number: Position in the aggregate's log (1-indexed).
        timestamp: When the event occurred (UTC).
        correlation_id: Logical operation the event belongs to.
        causation_id: What directly caused the event, usually a command_id.

    Examples:
        >>> event = Event(
        ...     aggregate_id=user.id,
        ...     data=EmailChanged(email="alice.smith@example.com"),
        ...     sequence_number=1,
        ... )
        >>> event.type
        'EmailChanged'
    """

    model_config = ConfigDict(frozen=True)

    id: ULID = Field(
        default_factory=ULID,
        description="Unique identifier for this event instance",
    )
    aggregate_id: ULID = Field(description="ID of the aggregate that produced this event")
    data: T = Field(description="Typed event data conforming to schema T")
    sequence_number: int = Field(
        ge=1,
        description="Position in aggregate's event log (1-indexed)",
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC timezone)",
    )
    correlation_id: ULID | None = Field(
        default=None,
        description="Correlation ID for tracing the entire logical operation",
    )
    causation_id: ULID | None = Field(
        default=None,
        description="ID of what directly caused this event (typically the command_id)",
    )

    @property
    def type(self) -> str:
        """Tag naming the event kind, taken from the payload class."""
        return type(self.data).__name__

    @property
    def payload(self) -> T:
        return self.data
