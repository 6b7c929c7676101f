"""User aggregate: a rich, event-sourced model enforcing its own rules."""

import re

from pydantic import BaseModel

from .domain import Aggregate, Command, ValidationError
from .routing import applies_event, handles_command

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_NAME_LENGTH = 2


# Commands
class ChangeName(Command[None]):
    value: str


class ChangeEmail(Command[None]):
    value: str


# Events
class NameChanged(BaseModel):
    name: str


class EmailChanged(BaseModel):
    email: str


class User(Aggregate):
    """A user whose name and email only change through validated events.

    Examples:
        >>> from ulid import ULID
        >>> user = User.create(ULID(), name="Alice", email="alice@example.com")
        >>> user.change("email", "alice.smith@example.com")
        >>> user.email
        'alice.smith@example.com'
    """

    change_commands = {"name": ChangeName, "email": ChangeEmail}

    name: str = ""
    email: str = ""

    @handles_command
    def handle_change_name(self, cmd: ChangeName) -> None:
        name = cmd.value.strip()
        if not name:
            raise ValidationError("name", "must not be empty")
        if len(name) < MIN_NAME_LENGTH:
            raise ValidationError("name", f"must be at least {MIN_NAME_LENGTH} characters")
        self.emit(NameChanged(name=name))

    @handles_command
    def handle_change_email(self, cmd: ChangeEmail) -> None:
        if not cmd.value:
            raise ValidationError("email", "must not be empty")
        if not EMAIL_PATTERN.match(cmd.value):
            raise ValidationError("email", f"{cmd.value!r} is not a valid address")
        self.emit(EmailChanged(email=cmd.value))

    @applies_event
    def apply_name_changed(self, evt: NameChanged) -> None:
        self.name = evt.name

    @applies_event
    def apply_email_changed(self, evt: EmailChanged) -> None:
        self.email = evt.email
