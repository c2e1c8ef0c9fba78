"""Error taxonomy raised by the scheduling engine.

Validation and conflict errors go back to the caller untouched; the engine
never retries them. ``StoreUnavailable`` wraps storage failures so the
caller's transaction layer can decide on a retry policy.
"""


class SchedulingError(Exception):
    """Base class for every error the engine raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    """A doctor, appointment or template does not exist."""


class SlotConflict(SchedulingError):
    """The proposed interval overlaps an active appointment for the same doctor."""


class OutsideAvailability(SchedulingError):
    """The proposed interval is not inside any resolved availability window."""


class InvalidTransition(SchedulingError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, message: str, current_status: str | None = None, requested_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class ValidationError(SchedulingError):
    """Malformed duration, date, time range or other input."""


class StoreUnavailable(SchedulingError):
    """The transactional store failed; surfaced as-is, never retried here."""
