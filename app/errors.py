"""Domain errors raised by the time clock services.

All errors subclass ``ValueError`` so callers that only care about
"bad request" can keep catching the base type.
"""


class TimeClockError(ValueError):
    """Base class for time clock domain errors."""


class ValidationError(TimeClockError):
    """Malformed or out-of-range input."""


class IllegalTransitionError(TimeClockError):
    """Operation invoked from a state that forbids it."""


class ConflictError(TimeClockError):
    """Operation blocked by the state of another record, or a lost update."""

    def __init__(self, message: str, entry_id: str | None = None):
        super().__init__(message)
        self.entry_id = entry_id


class NotFoundError(TimeClockError):
    """No open entry, or unknown entry id."""
