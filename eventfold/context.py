import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace

from ulid import ULID


@dataclass(frozen=True)
class ExecutionContext:
    """Correlation data for the operation currently in flight.

    Aggregates read the context when emitting events so every event records
    which logical operation it belongs to and which command produced it.

    Attributes:
        correlation_id: Constant across every command and event belonging to
            one logical operation.
        causation_id: ID of whatever directly triggered the current work.
        command_id: ID of the command currently being handled. Events emitted
            while it is set use it as their causation_id.

    Examples:
        >>> ctx = ExecutionContext.create()
        >>> with execution_scope(ctx.for_command(command.command_id)):
        ...     user.handle(command)
    """

    correlation_id: ULID | None = None
    causation_id: ULID | None = None
    command_id: ULID | None = None

    @classmethod
    def create(cls, correlation_id: ULID | None = None) -> "ExecutionContext":
        """Start a new logical operation.

        At an entry point the causation_id is the correlation_id itself.
        """
        if correlation_id is None:
            correlation_id = ULID()
        return cls(correlation_id=correlation_id, causation_id=correlation_id)

    def for_command(self, command_id: ULID) -> "ExecutionContext":
        return replace(self, command_id=command_id)

    def with_causation(self, causation_id: ULID) -> "ExecutionContext":
        return replace(self, causation_id=causation_id)


_context: contextvars.ContextVar[ExecutionContext | None] = contextvars.ContextVar(
    "eventfold_execution_context", default=None
)


def get_context() -> ExecutionContext:
    """Return the current context, or an empty one if none is set."""
    ctx = _context.get()
    if ctx is None:
        return ExecutionContext()
    return ctx


def set_context(context: ExecutionContext) -> None:
    _context.set(context)


def clear_context() -> None:
    _context.set(None)


@contextmanager
def execution_scope(context: ExecutionContext) -> Iterator[ExecutionContext]:
    """Make ``context`` current for the duration of the block."""
    token = _context.set(context)
    try:
        yield context
    finally:
        _context.reset(token)
