"""Retry middleware for optimistic locking conflicts."""

import asyncio
import logging
from typing import Any

from ...domain import Command, ConcurrencyError
from ...routing import intercepts
from .base import Handler, Middleware

LOGGER = logging.getLogger(__name__)


class ConcurrencyRetryMiddleware(Middleware):
    """Retries commands whose save lost a race on the aggregate's stream.

    Every attempt reloads the aggregate from the store, so a retry runs the
    command against the state the competing writer produced. Any other
    exception is re-raised immediately.

    Attributes:
        max_attempts: Maximum number of attempts (initial + retries).
        retry_delay: Seconds to wait between attempts.

    Examples:
        >>> middleware = ConcurrencyRetryMiddleware(max_attempts=3, retry_delay=0.1)
    """

    __slots__ = ("max_attempts", "retry_delay")

    def __init__(self, max_attempts: int, retry_delay: float):
        """Initialize the concurrency retry middleware.

        Raises:
            ValueError: If max_attempts <= 0 or retry_delay < 0.
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    @intercepts
    async def retry_on_concurrency(self, command: Command, next: Handler) -> Any:
        last_error: ConcurrencyError | None = None
        for attempt in range(self.max_attempts):
            try:
                return await next(command)
            except ConcurrencyError as e:
                last_error = e
                LOGGER.warning(
                    f"Concurrency error on attempt {attempt + 1}/{self.max_attempts}: {e}"
                )
                if attempt < self.max_attempts - 1:
                    await asyncio.sleep(self.retry_delay)
        raise ConcurrencyError(f"Max attempts ({self.max_attempts}) reached") from last_error
