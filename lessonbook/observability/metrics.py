"""
Calendar-level numbers shown next to the views.

- Day stats (total / pending / confirmed / completed for one local date)
- Status breakdown over any set of bookings
- Double-booking audit: re-checks the no-overlap invariant over what is
  actually stored
"""
from collections.abc import Iterable, Sequence
from datetime import date, tzinfo

from lessonbook.scheduling.conflicts import NON_BLOCKING_STATUSES, ResourceIndex
from lessonbook.scheduling.slots import local_date
from lessonbook.scheduling.types import Booking, BookingStatus


def status_breakdown(bookings: Iterable[Booking]) -> dict:
    counts = {s.value: 0 for s in BookingStatus}
    for b in bookings:
        counts[BookingStatus(b.status).value] += 1
    return counts


def get_day_stats(bookings: Iterable[Booking], day: date, tz: tzinfo) -> dict:
    """
    Counts for bookings starting on `day` in the calendar's zone.
    """
    todays = [b for b in bookings if local_date(b.start_at, tz) == day]
    by_status = status_breakdown(todays)

    return {
        "date": day,
        "total": len(todays),
        "pending": by_status[BookingStatus.PENDING.value],
        "confirmed": by_status[BookingStatus.CONFIRMED.value],
        "completed": by_status[BookingStatus.COMPLETED.value],
        "by_status": by_status,
    }


def find_double_bookings(bookings: Sequence[Booking],
                         ignore_statuses: frozenset = NON_BLOCKING_STATUSES) -> list[dict]:
    """
    Pairs of stored bookings that share an instructor or student and overlap.
    Each pair is reported once, against the earlier-starting booking.
    """
    index = ResourceIndex(ignore_statuses=ignore_statuses)
    violations = []

    for b in sorted(bookings, key=lambda b: b.start_at):
        if b.status in ignore_statuses:
            continue
        clash = index.find_conflict(b, exclude_id=b.id)
        if clash is not None:
            violations.append({"booking_id": b.id, "conflicts_with": clash.id})
        index.book(b)

    return violations
