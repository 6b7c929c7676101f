"""Base middleware class for the command bus.

Middleware wraps command handling to provide cross-cutting concerns like
logging, retries, or context propagation.
"""

import inspect
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any, ClassVar

from ...domain import Command

if TYPE_CHECKING:
    from ...routing import MessageRouter

Handler = Callable[[Command[Any]], Coroutine[Any, Any, Any]]


class Middleware:
    """Base class for middleware with annotation-based routing.

    Methods marked with ``@intercepts`` receive the commands matching their
    annotation together with the next handler in the chain. Commands no
    interceptor matches are passed straight through.

    Examples:
        >>> class TimingMiddleware(Middleware):
        ...     @intercepts
        ...     async def time_command(self, cmd: Command, next: Handler) -> Any:
        ...         started = time.monotonic()
        ...         try:
        ...             return await next(cmd)
        ...         finally:
        ...             LOGGER.info("took %.3fs", time.monotonic() - started)
    """

    _command_router: ClassVar["MessageRouter"]

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        from ...routing import setup_middleware_routing

        cls._command_router = setup_middleware_routing(cls)

    async def intercept(self, command: Command[Any], next: Handler) -> Any:
        """Route a command to the matching interceptor or forward it."""
        if not self._command_router.handles(type(command)):
            return await next(command)

        result = self._command_router.route(self, command, next)
        if inspect.isawaitable(result):
            return await result
        return result
