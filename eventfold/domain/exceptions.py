"""Exceptions raised by aggregates and the stores they are saved to."""


class ValidationError(ValueError):
    """Raised when a requested change breaks a business rule.

    The aggregate is left exactly as it was: no field changes and nothing is
    appended to its event log.

    Attributes:
        field: Name of the field the change targeted.
        reason: Human readable description of the broken rule.
    """

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}")
        self.field = field
        self.reason = reason


class UnknownEventType(LookupError):
    """Raised when an aggregate is asked to apply an event it has no applier for.

    Only raised under ``UnknownEventPolicy.RAISE``. The aggregate's state and
    log are unchanged.
    """

    def __init__(self, aggregate_type: str, event_type: str):
        super().__init__(f"{aggregate_type} has no applier for event type {event_type}")
        self.aggregate_type = aggregate_type
        self.event_type = event_type


class ConcurrencyError(Exception):
    """Raised when an optimistic concurrency check fails.

    Another writer appended to the aggregate's stream between the time it was
    loaded and the time its new events were saved.
    """

    pass
