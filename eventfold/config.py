"""Library configuration using pydantic-settings."""

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class UnknownEventPolicy(str, Enum):
    """What an aggregate does with an event it has no applier for.

    RAISE rejects the event with UnknownEventType and leaves the aggregate
    untouched. IGNORE logs a warning and records the event without changing
    any field.
    """

    RAISE = "raise"
    IGNORE = "ignore"


class EventfoldSettings(BaseSettings):
    """Process-wide defaults.

    All settings can be configured via environment variables with the
    EVENTFOLD_ prefix. For example:
    - EVENTFOLD_UNKNOWN_EVENT_POLICY=ignore
    - EVENTFOLD_LOG_LEVEL=DEBUG
    - EVENTFOLD_RETRY_MAX_ATTEMPTS=5

    Attributes:
        unknown_event_policy: Policy for aggregates that do not set their own.
        log_level: Level used by LoggingMiddleware when built from settings.
        retry_max_attempts: Attempts made by ConcurrencyRetryMiddleware.
        retry_delay: Seconds between retry attempts.

    Example:
        >>> settings = EventfoldSettings(unknown_event_policy="ignore")
        >>> bus = CommandBus.from_settings(repositories, settings)
    """

    model_config = SettingsConfigDict(env_prefix="EVENTFOLD_")

    unknown_event_policy: UnknownEventPolicy = UnknownEventPolicy.RAISE
    log_level: str = "INFO"
    retry_max_attempts: int = Field(default=3, gt=0)
    retry_delay: float = Field(default=0.05, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> EventfoldSettings:
    """Settings loaded from the environment, read once per process.

    Call ``get_settings.cache_clear()`` after changing the environment.
    """
    return EventfoldSettings()
