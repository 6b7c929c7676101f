import copy
import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from pydantic import BaseModel, Field, PrivateAttr, computed_field
from pydantic import ValidationError as PydanticValidationError
from typing_extensions import Self
from ulid import ULID

from ..config import UnknownEventPolicy, get_settings
from ..context import ExecutionContext, execution_scope, get_context
from ..routing import setup_command_routing, setup_event_applying
from .command import Command
from .event import Event
from .exceptions import UnknownEventType, ValidationError

if TYPE_CHECKING:
    from ..routing import MessageRouter

LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_BOOKKEEPING_FIELDS = frozenset({"id", "version", "last_event_time"})
_RESERVED_NAMES = _BOOKKEEPING_FIELDS | {"event_log", "uncommitted_events"}


class Aggregate(BaseModel):
    """Base class for event-sourced aggregates.

    An aggregate's current fields are the left-fold of its event log over the
    state it was created with. The only way a field changes is by applying an
    event: appliers marked with ``@applies_event`` describe how each event
    kind transforms state, and assigning a field anywhere else raises
    ``AttributeError``. Domain fields should hold immutable values such as
    tuples or frozen models.

    Commands express intent. Methods marked with ``@handles_command`` check
    business rules and call ``emit`` for each event the command produces.
    ``change(field, value)`` is a shortcut that builds the single-field
    command registered in ``change_commands`` and handles it.

    Every mutating operation is all-or-nothing and serialized per instance:
    if an applier, a handler or the unknown-event policy raises, fields, log
    and version are restored to what they were before the call.

    Examples:
        >>> class EmailChanged(BaseModel):
        ...     email: str
        >>>
        >>> class ChangeEmail(Command[None]):
        ...     value: str
        >>>
        >>> class User(Aggregate):
        ...     change_commands = {"email": ChangeEmail}
        ...     email: str = ""
        ...
        ...     @handles_command
        ...     def handle_change_email(self, cmd: ChangeEmail) -> None:
        ...         if not cmd.value:
        ...             raise ValidationError("email", "must not be empty")
        ...         self.emit(EmailChanged(email=cmd.value))
        ...
        ...     @applies_event
        ...     def apply_email_changed(self, evt: EmailChanged) -> None:
        ...         self.email = evt.email
        >>>
        >>> from ulid import ULID
        >>> user = User.create(ULID(), email="alice@example.com")
        >>> user.change("email", "alice.smith@example.com")
        >>> user.event_log[0].type
        'EmailChanged'

    Attributes:
        id: Identity assigned at creation. Never changes.
        version: Number of events applied so far.
        last_event_time: Timestamp of the most recently applied event.
        event_log: Every applied event, in application order. Read-only.
        uncommitted_events: Events emitted but not yet saved to a store.
            Read-only and excluded from serialization.
        unknown_event_policy: Class-level override of the settings policy
            for events with no applier.
        change_commands: Field name to single-field command type, used by
            ``change``.
    """

    id: ULID = Field(default_factory=ULID)
    version: int = 0
    last_event_time: datetime | None = None

    unknown_event_policy: ClassVar[UnknownEventPolicy | None] = None
    change_commands: ClassVar[dict[str, type[Command[Any]]]] = {}

    _command_router: ClassVar["MessageRouter"]
    _event_router: ClassVar["MessageRouter"]

    _lock: Any = PrivateAttr(default_factory=threading.RLock)
    _applier: int | None = PrivateAttr(default=None)
    _event_log: list[Event[Any]] = PrivateAttr(default_factory=list)
    _uncommitted_events: list[Event[Any]] = PrivateAttr(default_factory=list)

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)  # type: ignore[arg-type]
        cls._command_router = setup_command_routing(cls)
        cls._event_router = setup_event_applying(cls)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in type(self).model_fields and self._applier != threading.get_ident():
            raise AttributeError(
                f"{type(self).__name__}.{name} can only change by applying an event"
            )
        super().__setattr__(name, value)

    @classmethod
    def create(cls, identity: ULID | None = None, **initial_fields: Any) -> Self:
        """Create an aggregate with an empty event log.

        Args:
            identity: Identity of the new aggregate. Generated when omitted.
            **initial_fields: Starting values for the domain fields.

        Raises:
            TypeError: If ``initial_fields`` names the version, the logs or
                any other bookkeeping field. Those only change by applying
                events.
        """
        if reserved := _RESERVED_NAMES.intersection(initial_fields):
            raise TypeError(
                f"{cls.__name__}.create() cannot set {', '.join(sorted(reserved))}"
            )
        if identity is None:
            identity = ULID()
        return cls(id=identity, **initial_fields)

    @classmethod
    def rehydrate(
        cls, identity: ULID, events: Iterable[Event[Any]], **initial_fields: Any
    ) -> Self:
        """Rebuild an aggregate from its initial fields and its event history."""
        return cls.create(identity, **initial_fields).replay(events)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def event_log(self) -> tuple[Event[Any], ...]:
        return tuple(self._event_log)

    @property
    def uncommitted_events(self) -> tuple[Event[Any], ...]:
        return tuple(self._uncommitted_events)

    def resolve_unknown_event_policy(self) -> UnknownEventPolicy:
        if self.unknown_event_policy is not None:
            return self.unknown_event_policy
        return get_settings().unknown_event_policy

    def current_fields(self) -> dict[str, Any]:
        """A copy of the domain fields, excluding identity and event bookkeeping."""
        return {
            name: copy.deepcopy(getattr(self, name))
            for name in type(self).model_fields
            if name not in _BOOKKEEPING_FIELDS
        }

    def handle(self, command: Command[Any]) -> Any:
        """Route a command to its registered handler method.

        Events emitted by the handler carry the command's id as their
        causation_id. If the handler raises, nothing it emitted is kept.

        Raises:
            NotImplementedError: If no handler is registered for this command type.
        """
        if command.aggregate_id != self.id:
            raise ValueError(
                f"Command {type(command).__name__} targets aggregate "
                f"{command.aggregate_id}, not {self.id}"
            )
        with self._lock:
            ctx = get_context()
            if ctx.correlation_id is None:
                ctx = ExecutionContext.create(command.correlation_id)
            checkpoint = self._checkpoint()
            try:
                with execution_scope(ctx.for_command(command.command_id)):
                    return self._command_router.route(self, command)
            except Exception:
                self._restore(checkpoint)
                raise

    def change(self, field: str, new_value: Any) -> Any:
        """Change a single field through its registered command.

        Raises:
            ValidationError: If the field has no change command or the value
                breaks a rule. The aggregate is unchanged.
        """
        command_type = self.change_commands.get(field)
        if command_type is None:
            raise ValidationError(field, f"{type(self).__name__} has no change command for it")
        try:
            command = command_type(aggregate_id=self.id, value=new_value)
        except PydanticValidationError as exc:
            raise ValidationError(field, exc.errors()[0]["msg"]) from exc
        return self.handle(command)

    def emit(self, data: T) -> Event[T]:
        """Wrap a payload in an event, apply it and queue it for saving.

        The event takes the next sequence number and the correlation and
        causation ids of the current execution context.

        Args:
            data: The event payload describing what happened.

        Returns:
            The applied event.
        """
        with self._lock:
            ctx = get_context()
            event: Event[T] = Event(
                aggregate_id=self.id,
                sequence_number=self.version + 1,
                data=data,
                correlation_id=ctx.correlation_id,
                causation_id=ctx.command_id,
            )
            self._apply(event)
            self._uncommitted_events.append(event)
            return event

    def apply(self, event: Event[Any]) -> None:
        """Fold one event into the current state and append it to the log.

        Raises:
            UnknownEventType: If no applier handles the payload type and the
                policy is ``UnknownEventPolicy.RAISE``.
            ValueError: If the event belongs to another aggregate.
        """
        with self._lock:
            self._apply(event)

    def replay(self, events: Iterable[Event[Any]]) -> Self:
        """Apply events in the order given.

        Ordering is the caller's responsibility and is never normalized. The
        batch is all-or-nothing: if any event is rejected the aggregate is
        left as it was before the call.
        """
        with self._lock:
            checkpoint = self._checkpoint()
            try:
                for event in events:
                    self._apply(event)
            except Exception:
                self._restore(checkpoint)
                raise
        return self

    def changed_since(self, version: int) -> bool:
        return self.version > version

    def get_uncommitted_events(self) -> list[Event[Any]]:
        return list(self._uncommitted_events)

    def clear_uncommitted_events(self) -> None:
        """Forget pending events, typically once they have been saved."""
        with self._lock:
            self._uncommitted_events.clear()

    def _apply(self, event: Event[Any]) -> None:
        if event.aggregate_id != self.id:
            raise ValueError(
                f"Event {event.id} belongs to aggregate {event.aggregate_id}, not {self.id}"
            )

        known = self._event_router.handles(type(event.data))
        if not known:
            if self.resolve_unknown_event_policy() is UnknownEventPolicy.RAISE:
                raise UnknownEventType(type(self).__name__, event.type)
            LOGGER.warning(
                "Ignoring event with no applier",
                extra={
                    "aggregate_type": type(self).__name__,
                    "aggregate_id": str(self.id),
                    "event_type": event.type,
                    "event_id": str(event.id),
                },
            )

        checkpoint = self._checkpoint()
        # Only the thread holding the lock may assign fields while applying
        previous_applier = self._applier
        self._applier = threading.get_ident()
        try:
            if known:
                self._event_router.route(self, event.data, event_wrapper=event)
            self.version += 1
            self.last_event_time = event.timestamp
            self._event_log.append(event)
        except Exception:
            self._restore(checkpoint)
            raise
        finally:
            self._applier = previous_applier

    def _checkpoint(self) -> tuple[dict[str, Any], list[Event[Any]], list[Event[Any]]]:
        # Events are frozen, so shallow copies of the logs are enough
        return (
            copy.deepcopy(self.__dict__),
            list(self._event_log),
            list(self._uncommitted_events),
        )

    def _restore(
        self, checkpoint: tuple[dict[str, Any], list[Event[Any]], list[Event[Any]]]
    ) -> None:
        fields, event_log, uncommitted_events = checkpoint
        self.__dict__.update(fields)
        self._event_log[:] = event_log
        self._uncommitted_events[:] = uncommitted_events
