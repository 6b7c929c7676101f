import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import singledispatch
from typing import Any, TypeVar, get_args, get_origin

from pydantic import BaseModel

T = TypeVar("T")

# Marker for appliers that want the Event envelope, not just payload
_WANTS_EVENT_WRAPPER_ATTR = "_wants_event_wrapper"


class DefaultHandler(ABC):
    """Fallback for message types that have no registered handler."""

    __slots__ = ("base_type", "operation_name")

    def __init__(self, base_type: type, operation_name: str):
        """Initialize the default handler.

        Args:
            base_type: The base type for messages (e.g., Command,
                BaseModel).
            operation_name: Name of the operation for error
                messages.
        """
        self.base_type = base_type
        self.operation_name = operation_name

    @abstractmethod
    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any: ...


class RaiseHandler(DefaultHandler):
    """Raise NotImplementedError for unregistered message types."""

    __slots__ = ()

    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError(
            f"No {self.operation_name} registered for "
            f"{self.base_type.__name__} type {type(message).__name__}"
        )


class IgnoreHandler(DefaultHandler):
    """Do nothing for unregistered message types."""

    __slots__ = ()

    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
        return None


def _extract_handler_type(func: Callable[..., Any], param_index: int = 1) -> tuple[type, bool]:
    """Extract the message type a handler method accepts.

    Appliers annotated as ``Event[T]`` are routed on ``T`` and receive the
    full envelope; appliers annotated as ``T`` receive only the payload.

    Returns:
        A tuple of (payload_type, wants_wrapper).

    Raises:
        ValueError: If the parameter lacks a type annotation.
    """
    func_name = getattr(func, "__name__", repr(func))
    params = list(inspect.signature(func).parameters.values())

    if len(params) <= param_index:
        raise ValueError(f"Handler {func_name} must have at least {param_index + 1} parameters")

    param = params[param_index]
    if param.annotation is inspect.Parameter.empty:
        raise ValueError(
            f"Handler {func_name} parameter '{param.name}' must have a type annotation"
        )
    annotation = param.annotation

    from .domain.event import Event  # circular import

    if get_origin(annotation) is Event:
        args = get_args(annotation)
        if not args:
            raise ValueError(
                f"Handler {func_name}: Event type must have a type"
                " argument, e.g., Event[EmailChanged]"
            )
        return (args[0], True)

    # Event[T] on a pydantic generic is a concrete subclass at runtime
    if isinstance(annotation, type) and issubclass(annotation, Event):
        metadata = getattr(annotation, "__pydantic_generic_metadata__", None) or {}
        if metadata.get("origin") is Event and metadata.get("args"):
            return (metadata["args"][0], True)

    return (annotation, False)


class MessageRouter:
    """Dispatch messages to type-specific handler methods.

    Built on ``functools.singledispatch``, so a handler registered for a
    base class also receives its subclasses.
    """

    __slots__ = ("_dispatch", "_fallback")

    def __init__(self, default_handler: DefaultHandler):
        @singledispatch
        def dispatch(message: object, instance: object, *args: Any, **kwargs: Any) -> object:
            return default_handler(message, instance, *args, **kwargs)

        self._dispatch = dispatch
        self._fallback = dispatch.dispatch(object)

    def register(
        self,
        message_type: type,
        handler: Callable[..., object],
        wants_wrapper: bool = False,
    ) -> None:
        """Register a handler for a specific message type.

        Args:
            message_type: The message class this handler processes.
            handler: The method to call when handling this message type.
            wants_wrapper: If True, the handler receives the Event envelope
                passed to ``route`` as the ``event_wrapper`` kwarg.
        """
        if wants_wrapper:

            def wrapper(
                msg: object, inst: object, *args: Any, h: Any = handler, **kwargs: Any
            ) -> object:
                event_wrapper = kwargs.pop("event_wrapper", None)
                return h(inst, event_wrapper if event_wrapper is not None else msg, *args, **kwargs)

            self._dispatch.register(message_type)(wrapper)
        else:

            def payload_wrapper(
                msg: object, inst: object, *args: Any, h: Any = handler, **kwargs: Any
            ) -> object:
                kwargs.pop("event_wrapper", None)
                return h(inst, msg, *args, **kwargs)

            self._dispatch.register(message_type)(payload_wrapper)

    def handles(self, message_type: type) -> bool:
        """Whether a handler (not the default) is registered for ``message_type``."""
        return self._dispatch.dispatch(message_type) is not self._fallback

    def registered_types(self) -> list[type]:
        return [t for t in self._dispatch.registry if t is not object]

    def route(self, instance: Any, message: Any, *args: Any, **kwargs: Any) -> object:
        return self._dispatch(message, instance, *args, **kwargs)


class HandlerDecorator:
    """Marks methods as handlers for the message type in their annotation."""

    def __init__(self, marker_attr: str, type_attr: str):
        self.marker_attr = marker_attr
        self.type_attr = type_attr

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        message_type, wants_wrapper = _extract_handler_type(func, param_index=1)
        setattr(func, self.type_attr, message_type)
        setattr(func, self.marker_attr, True)
        setattr(func, _WANTS_EVENT_WRAPPER_ATTR, wants_wrapper)
        return func


handles_command = HandlerDecorator("_is_command_handler", "_handles_command_type")
applies_event = HandlerDecorator("_is_event_applier", "_applies_event_type")
intercepts = HandlerDecorator("_is_command_interceptor", "_intercepts_command_type")

handles_command.__doc__ = """Decorator marking a method as a command handler.

Example:
    >>> class User(Aggregate):
    ...     @handles_command
    ...     def handle_change_email(self, cmd: ChangeEmail) -> None:
    ...         self.emit(EmailChanged(email=cmd.value))
"""

applies_event.__doc__ = """Decorator marking a method as an event applier.

Example:
    >>> class User(Aggregate):
    ...     @applies_event
    ...     def apply_email_changed(self, evt: EmailChanged) -> None:
    ...         self.email = evt.email
"""

intercepts.__doc__ = """Decorator marking a middleware method as a command interceptor.

Use ``Command`` to intercept every command, or a concrete command class.

Example:
    >>> class AuditMiddleware(Middleware):
    ...     @intercepts
    ...     async def audit(self, cmd: Command, next: Handler) -> Any:
    ...         return await next(cmd)
"""


def setup_routing(
    cls: type,
    marker_attr: str,
    type_attr: str,
    default_handler: DefaultHandler,
) -> MessageRouter:
    """Scan ``cls`` and its bases for decorated methods and register them."""
    router = MessageRouter(default_handler)

    # Reversed MRO so subclasses override handlers declared on their bases
    for klass in reversed(cls.__mro__):
        for value in klass.__dict__.values():
            if getattr(value, marker_attr, None) is True:
                router.register(
                    getattr(value, type_attr),
                    value,
                    wants_wrapper=getattr(value, _WANTS_EVENT_WRAPPER_ATTR, False),
                )

    return router


def setup_command_routing(cls: type) -> MessageRouter:
    from .domain.command import Command  # circular import

    return setup_routing(
        cls,
        marker_attr="_is_command_handler",
        type_attr="_handles_command_type",
        default_handler=RaiseHandler(Command, "handler"),
    )


def setup_event_applying(cls: type) -> MessageRouter:
    # Unknown events are policed by Aggregate.apply before routing
    return setup_routing(
        cls,
        marker_attr="_is_event_applier",
        type_attr="_applies_event_type",
        default_handler=IgnoreHandler(BaseModel, "applier"),
    )


def setup_middleware_routing(cls: type) -> MessageRouter:
    return setup_routing(
        cls,
        marker_attr="_is_command_interceptor",
        type_attr="_intercepts_command_type",
        default_handler=IgnoreHandler(BaseModel, "interceptor"),
    )
