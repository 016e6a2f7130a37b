"""
Plain records the scheduling core works on.

These are request-scoped copies handed in by the repository; nothing in
lessonbook.scheduling mutates them. Changes are expressed with
dataclasses.replace().
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


# ── Enums ────────────────────────────────────────────────────────────────────

class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW,
})


class StatusAction(str, enum.Enum):
    CONFIRM = "confirm"
    COMPLETE = "complete"
    CANCEL = "cancel"


class Operation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    MOVE = "move"


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Booking:
    """A lesson claiming an instructor and a student over [start_at, end_at).

    id is None for a draft that has not been stored yet.
    """
    school_id: str
    student_id: str
    instructor_id: str
    start_at: datetime
    end_at: datetime
    id: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    vehicle_id: Optional[str] = None
    lesson_type: str = "standard"
    price: Optional[Decimal] = None
    pickup_location: str = ""
    notes: str = ""
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 0

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)


@dataclass(frozen=True)
class Person:
    """Display-only reference data for a student or instructor."""
    id: str
    full_name: str
    is_active: bool = True
