"""Tests for annotation-based message routing."""

import pytest
from pydantic import BaseModel
from ulid import ULID

from eventfold.domain import Event
from eventfold.routing import (
    IgnoreHandler,
    MessageRouter,
    RaiseHandler,
    _extract_handler_type,
    applies_event,
)


class Pinged(BaseModel):
    count: int


class LoudPinged(Pinged):
    pass


class Unrouted(BaseModel):
    pass


class Target:
    def __init__(self):
        self.seen = []

    def on_ping(self, evt: Pinged):
        self.seen.append(("payload", evt))

    def on_ping_envelope(self, event: Event[Pinged]):
        self.seen.append(("envelope", event))


def test_extract_payload_type():
    assert _extract_handler_type(Target.on_ping) == (Pinged, False)


def test_extract_envelope_type():
    assert _extract_handler_type(Target.on_ping_envelope) == (Pinged, True)


def test_extract_requires_annotation():
    def handler(self, evt):
        pass

    with pytest.raises(ValueError, match="must have a type annotation"):
        _extract_handler_type(handler)


def test_extract_requires_message_parameter():
    def handler(self):
        pass

    with pytest.raises(ValueError, match="at least 2 parameters"):
        _extract_handler_type(handler)


def test_decorator_marks_method():
    def apply_ping(self, evt: Pinged) -> None:
        pass

    decorated = applies_event(apply_ping)

    assert decorated._is_event_applier is True
    assert decorated._applies_event_type is Pinged


def test_router_dispatches_subclasses_to_base_handler():
    router = MessageRouter(IgnoreHandler(BaseModel, "applier"))
    router.register(Pinged, Target.on_ping)
    target = Target()

    router.route(target, LoudPinged(count=2))

    assert target.seen == [("payload", LoudPinged(count=2))]
    assert router.handles(LoudPinged)
    assert not router.handles(Unrouted)
    assert router.registered_types() == [Pinged]


def test_router_passes_envelope_to_wrapper_handlers():
    router = MessageRouter(IgnoreHandler(BaseModel, "applier"))
    router.register(Pinged, Target.on_ping_envelope, wants_wrapper=True)
    target = Target()
    event = Event(aggregate_id=ULID(), data=Pinged(count=1), sequence_number=1)

    router.route(target, event.data, event_wrapper=event)

    assert target.seen == [("envelope", event)]


def test_raise_handler_names_the_message_type():
    router = MessageRouter(RaiseHandler(BaseModel, "handler"))

    with pytest.raises(NotImplementedError, match="BaseModel type Unrouted"):
        router.route(Target(), Unrouted())