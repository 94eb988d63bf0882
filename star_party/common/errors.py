"""Error types for the presence subsystem.

Every failure is scoped to one connection or one message; none of these
is meant to take the server process down.
"""

from __future__ import annotations


class PartyError(Exception):
    """Base class for presence errors."""


class DuplicateConnection(PartyError):
    """A connection id was registered twice in one room."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"connection {connection_id!r} is already registered")
        self.connection_id = connection_id


class UnknownConnection(PartyError):
    """An update targeted a connection that is not (or no longer) registered."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"connection {connection_id!r} is not registered")
        self.connection_id = connection_id


class MalformedMessage(PartyError, ValueError):
    """A frame could not be parsed into a known message."""


class DeliveryFailure(PartyError):
    """A frame could not be handed to one recipient."""

    def __init__(self, connection_id: str, reason: str) -> None:
        super().__init__(f"delivery to {connection_id!r} failed: {reason}")
        self.connection_id = connection_id
        self.reason = reason


class MissingIdentity(PartyError):
    """A globe connection arrived without location metadata."""


class InvalidTransition(PartyError):
    """A lifecycle transition that the state machine does not allow."""
