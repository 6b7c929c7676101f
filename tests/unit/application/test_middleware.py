"""Tests for the command bus middleware."""

import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest
from ulid import ULID

from eventfold.application.middleware import (
    ConcurrencyRetryMiddleware,
    ContextPropagationMiddleware,
    Handler,
    LoggingMiddleware,
    Middleware,
)
from eventfold.context import ExecutionContext, get_context, set_context
from eventfold.domain import ConcurrencyError
from eventfold.routing import intercepts
from eventfold.users import ChangeEmail, ChangeName


@pytest.fixture
def command():
    return ChangeEmail(aggregate_id=ULID(), value="alice@example.com")


# Base routing


class NameOnlyMiddleware(Middleware):
    def __init__(self):
        self.seen = []

    @intercepts
    async def on_rename(self, command: ChangeName, next: Handler) -> Any:
        self.seen.append(command)
        return await next(command)


@pytest.mark.asyncio
async def test_unmatched_commands_pass_through(command):
    middleware = NameOnlyMiddleware()
    next_handler = AsyncMock(return_value="done")

    assert await middleware.intercept(command, next_handler) == "done"
    assert middleware.seen == []
    next_handler.assert_awaited_once_with(command)


@pytest.mark.asyncio
async def test_matched_commands_are_intercepted():
    middleware = NameOnlyMiddleware()
    rename = ChangeName(aggregate_id=ULID(), value="Alicia")

    await middleware.intercept(rename, AsyncMock())

    assert middleware.seen == [rename]


# Logging


def test_logging_middleware_level_is_case_insensitive():
    assert LoggingMiddleware("info").level == logging.INFO
    assert LoggingMiddleware("DeBuG").level == logging.DEBUG


@pytest.mark.asyncio
async def test_logging_middleware_logs_type_and_context_but_not_values(command, caplog):
    ctx = ExecutionContext.create().for_command(command.command_id)
    set_context(ctx)
    next_handler = AsyncMock()

    with caplog.at_level(logging.INFO):
        await LoggingMiddleware("INFO").log_command(command, next_handler)

    [record] = caplog.records
    assert record.message == "Received Command"
    assert record.command_type == "ChangeEmail"
    assert record.aggregate_id == str(command.aggregate_id)
    assert record.correlation_id == str(ctx.correlation_id)
    assert record.command_id == str(command.command_id)
    assert "alice@example.com" not in caplog.text
    next_handler.assert_awaited_once_with(command)


@pytest.mark.asyncio
async def test_logging_middleware_logs_failures(command, caplog):
    next_handler = AsyncMock(side_effect=RuntimeError("boom"))

    with caplog.at_level(logging.INFO), pytest.raises(RuntimeError):
        await LoggingMiddleware("INFO").log_command(command, next_handler)

    assert [r.message for r in caplog.records] == ["Received Command", "Command failed"]
    assert caplog.records[1].error_type == "RuntimeError"


# Concurrency retry


def test_retry_middleware_validates_parameters():
    with pytest.raises(ValueError, match="max_attempts must be positive"):
        ConcurrencyRetryMiddleware(max_attempts=0, retry_delay=0.1)
    with pytest.raises(ValueError, match="retry_delay must be non-negative"):
        ConcurrencyRetryMiddleware(max_attempts=3, retry_delay=-0.1)


@pytest.mark.asyncio
async def test_retry_succeeds_after_conflict(command):
    middleware = ConcurrencyRetryMiddleware(max_attempts=3, retry_delay=0)
    next_handler = AsyncMock(side_effect=[ConcurrencyError("Conflict"), "ok"])

    assert await middleware.retry_on_concurrency(command, next_handler) == "ok"
    assert next_handler.await_count == 2


@pytest.mark.asyncio
async def test_retry_does_not_retry_other_errors(command):
    middleware = ConcurrencyRetryMiddleware(max_attempts=3, retry_delay=0)
    next_handler = AsyncMock(side_effect=ValueError("bad"))

    with pytest.raises(ValueError, match="bad"):
        await middleware.retry_on_concurrency(command, next_handler)
    assert next_handler.await_count == 1


@pytest.mark.asyncio
async def test_retry_logs_each_conflict(command, caplog):
    middleware = ConcurrencyRetryMiddleware(max_attempts=2, retry_delay=0)
    next_handler = AsyncMock(side_effect=ConcurrencyError("Conflict"))

    with caplog.at_level(logging.WARNING), pytest.raises(ConcurrencyError):
        await middleware.retry_on_concurrency(command, next_handler)

    assert "attempt 1/2" in caplog.text
    assert "attempt 2/2" in caplog.text


# Context propagation


@pytest.mark.asyncio
async def test_context_generated_at_entry_point(command):
    seen = []

    async def next_handler(cmd):
        seen.append(get_context())

    await ContextPropagationMiddleware().propagate_context(command, next_handler)

    [ctx] = seen
    assert ctx.correlation_id is not None
    assert ctx.causation_id == ctx.correlation_id
    assert ctx.command_id == command.command_id


@pytest.mark.asyncio
async def test_context_taken_from_command_and_restored():
    correlation_id, causation_id = ULID(), ULID()
    command = ChangeName(
        aggregate_id=ULID(),
        value="Alicia",
        correlation_id=correlation_id,
        causation_id=causation_id,
    )
    seen = []

    async def next_handler(cmd):
        seen.append(get_context())

    await ContextPropagationMiddleware().propagate_context(command, next_handler)

    assert seen[0].correlation_id == correlation_id
    assert seen[0].causation_id == causation_id
    assert get_context().correlation_id is None
