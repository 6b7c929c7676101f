"""Logging middleware for command tracing."""

import logging
from typing import Any

from ...context import get_context
from ...domain import Command
from ...routing import intercepts
from .base import Handler, Middleware

LOGGER = logging.getLogger(__name__)


class LoggingMiddleware(Middleware):
    """Logs every command with its correlation context.

    Only the command type and ids are logged. Command values (names, email
    addresses and the like) are never written to the log.

    Attributes:
        level: The numeric logging level.

    Examples:
        >>> bus = CommandBus([users], middleware=[LoggingMiddleware("DEBUG")])

    Note:
        Place ContextPropagationMiddleware before this middleware so the
        correlation ids are available when the command is logged.
    """

    def __init__(self, level: str):
        """Initialize the logging middleware.

        Args:
            level: Name of the log level (e.g., "INFO"). Case-insensitive.
        """
        self.level = getattr(logging, level.upper())

    @intercepts
    async def log_command(self, command: Command, next: Handler) -> Any:
        extra = {
            "command_type": type(command).__name__,
            "aggregate_id": str(command.aggregate_id),
        }

        ctx = get_context()
        if ctx.correlation_id is not None:
            extra["correlation_id"] = str(ctx.correlation_id)
        if ctx.causation_id is not None:
            extra["causation_id"] = str(ctx.causation_id)
        if ctx.command_id is not None:
            extra["command_id"] = str(ctx.command_id)

        LOGGER.log(self.level, "Received Command", extra=extra)
        try:
            return await next(command)
        except Exception as e:
            LOGGER.log(
                self.level,
                "Command failed",
                extra={**extra, "error_type": type(e).__name__},
            )
            raise
