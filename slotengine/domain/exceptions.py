"""
Domain-specific exception hierarchy for the slot engine.

Booking rejections (closed day, conflict, ...) are not exceptions; they are
returned as ``RejectionReason`` values. The classes below cover malformed
input and infrastructure failures only.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidInputError(SlotEngineError, ValueError):
    """Raised when clock times, durations or windows are malformed."""


class NotFoundError(SlotEngineError):
    """Raised when a business, service or appointment does not exist."""


class PermissionDeniedError(SlotEngineError):
    """Raised when a caller acts outside of their business or customer scope."""


class RepositoryError(SlotEngineError):
    """Raised when schedule data cannot be fetched or stored."""


class BookingConflictError(SlotEngineError):
    """
    Raised by a repository when a booking no longer fits at insert time.

    This happens when another request took the interval between validation
    and persistence.
    """

    def __init__(self, reason, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason.message)
