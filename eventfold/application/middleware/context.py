"""Context propagation middleware for correlation and causation tracking."""

from typing import Any

from ulid import ULID

from ...context import ExecutionContext, execution_scope
from ...domain import Command
from ...routing import intercepts
from .base import Handler, Middleware


class ContextPropagationMiddleware(Middleware):
    """Sets the execution context from the command being dispatched.

    - correlation_id: taken from the command, or generated at an entry point
    - causation_id: taken from the command, or the correlation_id itself
    - command_id: always the command's own id

    Events the aggregate emits while handling the command inherit this
    context. The previous context is restored afterwards, even on failure.
    """

    @intercepts
    async def propagate_context(self, command: Command, next: Handler) -> Any:
        correlation_id = command.correlation_id or ULID()
        ctx = ExecutionContext(
            correlation_id=correlation_id,
            causation_id=command.causation_id or correlation_id,
            command_id=command.command_id,
        )
        with execution_scope(ctx):
            return await next(command)
