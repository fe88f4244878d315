"""Error kinds raised across the reminder bot."""

from __future__ import annotations


class ReminderBotError(Exception):
    """Base class for every error this package raises on purpose."""


class ConfigError(ReminderBotError):
    """Configuration could not be read or validated. Fatal at startup."""


class ParseFailure(ReminderBotError):
    """A human datetime phrase did not match or had an out-of-range part."""


class PastDueDate(ReminderBotError):
    """A parsed due date is not after the current instant."""


class TransportError(ReminderBotError):
    """An HTTP request failed before a response was received."""


class ProtocolError(ReminderBotError):
    """A response had a non-2xx status or a malformed body."""


class PersistenceError(ReminderBotError):
    """A database insert, update or query failed."""


class DuplicateId(PersistenceError):
    """A reminder with the same id already exists."""


class NotFound(PersistenceError):
    """No row matched the requested id."""


class Cancelled(ReminderBotError):
    """Raised when the cancellation flag wins a race against an operation."""
