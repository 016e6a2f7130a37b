"""
Schedule validator — one pass/fail decision for create, update and move.

Checks, in order, stopping at the first failure:
  end_at <= start_at                               → InvalidTimeRangeError
  start_at < now (create, or time window changed)  → PastStartError
  overlaps a booking on same instructor/student    → BookingConflictError

No I/O and no persistence: the caller reads the snapshot, calls this, and
commits only if it returns.
"""
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from lessonbook.scheduling.changes import compute_changes, time_window_changed
from lessonbook.scheduling.conflicts import NON_BLOCKING_STATUSES, find_conflict
from lessonbook.scheduling.errors import (
    BookingConflictError, InvalidTimeRangeError, PastStartError,
)
from lessonbook.scheduling.types import Booking, Operation

logger = logging.getLogger(__name__)


def check_time_range(booking: Booking):
    if booking.end_at <= booking.start_at:
        raise InvalidTimeRangeError()


def check_not_past(booking: Booking, now: datetime):
    if booking.start_at < now:
        raise PastStartError()


def _stored_version(booking: Booking, all_bookings: Sequence[Booking]) -> Optional[Booking]:
    if booking.id is None:
        return None
    return next((b for b in all_bookings if b.id == booking.id), None)


def validate_booking(
    op: Operation,
    booking: Booking,
    all_bookings: Sequence[Booking],
    now: datetime,
    original: Optional[Booking] = None,
    ignore_statuses: frozenset = NON_BLOCKING_STATUSES,
) -> None:
    """
    Raise a DomainError if booking may not be written; return None otherwise.

    For update/move the stored copy decides whether the time window moved.
    It is taken from `original` if given, else looked up in all_bookings by
    id; when neither has it the window counts as changed.
    """
    op = Operation(op)
    try:
        check_time_range(booking)

        if op is Operation.CREATE:
            check_not_past(booking, now)
        else:
            stored = original or _stored_version(booking, all_bookings)
            if stored is None or time_window_changed(compute_changes(stored, booking)):
                check_not_past(booking, now)

        exclude_id = None if op is Operation.CREATE else booking.id
        hit = find_conflict(booking, all_bookings, exclude_id=exclude_id,
                            ignore_statuses=ignore_statuses)
        if hit is not None:
            raise BookingConflictError(hit.id)

    except (InvalidTimeRangeError, PastStartError, BookingConflictError) as e:
        logger.info("Rejected %s for booking %s: %s", op.value, booking.id, e.code.value)
        raise
