"""Domain error codes for the scheduling core."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    PAST_START = "PAST_START"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"
    STALE_VERSION = "STALE_VERSION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    UNKNOWN_LESSON_TYPE = "UNKNOWN_LESSON_TYPE"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def details(self) -> dict:
        """Extra fields a caller may show next to the message."""
        return {}


class InvalidTimeRangeError(DomainError):
    """Raised when end_at is not after start_at."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TIME_RANGE,
            message="End time must be after start time",
        )


class PastStartError(DomainError):
    """Raised when a booking would start before now."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.PAST_START,
            message="Cannot schedule a booking in the past",
        )


class BookingConflictError(DomainError):
    """Raised when the instructor or student is already booked in the window."""

    def __init__(self, conflicting_booking_id: str) -> None:
        super().__init__(
            code=ErrorCode.CONFLICT,
            message="Booking time conflicts with an existing booking",
        )
        self.conflicting_booking_id = conflicting_booking_id

    def details(self) -> dict:
        return {"conflicting_booking_id": self.conflicting_booking_id}


class InvalidTransitionError(DomainError):
    """Raised when a status action is not allowed from the current status."""

    def __init__(self, status: str, action: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot {action} a booking that is {status}",
        )
        self.status = status
        self.action = action


class BookingNotFoundError(DomainError):
    """Raised when a booking is not found."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message="Booking not found",
        )
        self.booking_id = booking_id


class StaleBookingError(DomainError):
    """Raised by the repository when the stored version moved on."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            code=ErrorCode.STALE_VERSION,
            message="Booking was modified by another request",
        )
        self.booking_id = booking_id


class ConcurrentModificationError(DomainError):
    """Raised when optimistic retries are exhausted."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(
            code=ErrorCode.CONCURRENT_MODIFICATION,
            message="Booking keeps changing; refresh and try again",
        )
        self.booking_id = booking_id


class UnknownLessonTypeError(DomainError):
    """Raised when a lesson type is not in the catalogue."""

    def __init__(self, lesson_type: str) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_LESSON_TYPE,
            message=f"Unknown lesson type: {lesson_type}",
        )
