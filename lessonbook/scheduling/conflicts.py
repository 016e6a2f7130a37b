"""
Double-booking detection.

A stored booking blocks a candidate when it shares the instructor or the
student and their [start_at, end_at) intervals overlap. Touching intervals
(one ends exactly when the other starts) do not overlap.

find_conflict() is a straight scan in input order. ResourceIndex keeps the
same answer per resource while a whole store is swept in start order.
"""
import bisect
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from lessonbook.scheduling.types import Booking, BookingStatus

logger = logging.getLogger(__name__)

# Bookings in these states no longer hold their slot.
NON_BLOCKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.NO_SHOW})


def overlaps(a_start: datetime, a_end: datetime,
             b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def shares_resource(candidate: Booking, other: Booking) -> bool:
    return (other.instructor_id == candidate.instructor_id
            or other.student_id == candidate.student_id)


def blocking_statuses(block_on_inactive: bool = False) -> frozenset:
    """Statuses to skip while scanning; empty means every booking blocks."""
    return frozenset() if block_on_inactive else NON_BLOCKING_STATUSES


def find_conflicts(
    candidate: Booking,
    existing: Iterable[Booking],
    exclude_id: Optional[str] = None,
    ignore_statuses: frozenset = NON_BLOCKING_STATUSES,
) -> list[Booking]:
    """All stored bookings that clash with the candidate, in input order."""
    hits = []
    for b in existing:
        if exclude_id is not None and b.id == exclude_id:
            continue
        if b.status in ignore_statuses:
            continue
        if not shares_resource(candidate, b):
            continue
        if overlaps(candidate.start_at, candidate.end_at, b.start_at, b.end_at):
            hits.append(b)
    return hits


def find_conflict(
    candidate: Booking,
    existing: Iterable[Booking],
    exclude_id: Optional[str] = None,
    ignore_statuses: frozenset = NON_BLOCKING_STATUSES,
) -> Optional[Booking]:
    """First clashing booking in input order, or None."""
    for b in existing:
        if exclude_id is not None and b.id == exclude_id:
            continue
        if b.status in ignore_statuses:
            continue
        if not shares_resource(candidate, b):
            continue
        if overlaps(candidate.start_at, candidate.end_at, b.start_at, b.end_at):
            logger.warning(
                "Conflict: %s-%s (instructor=%s student=%s) clashes with booking %s",
                candidate.start_at.isoformat(), candidate.end_at.isoformat(),
                candidate.instructor_id, candidate.student_id, b.id,
            )
            return b
    return None


# ── Per-resource index ───────────────────────────────────────────────────────

@dataclass
class ResourceIndex:
    """
    Bookings grouped by ("instructor", id) / ("student", id), each list kept
    sorted by start_at. The double-booking audit books each stored booking
    in start order and asks whether it clashes with anything booked before.
    """
    ignore_statuses: frozenset = NON_BLOCKING_STATUSES
    booked: dict = field(default_factory=dict)     # key → [(start, seq, booking)]
    _seq: int = 0

    @staticmethod
    def _keys(b: Booking) -> tuple:
        return (("instructor", b.instructor_id), ("student", b.student_id))

    def book(self, b: Booking):
        if b.status in self.ignore_statuses:
            return
        # seq keeps insertion order among equal start times
        self._seq += 1
        for key in self._keys(b):
            bisect.insort(self.booked.setdefault(key, []),
                          (b.start_at, self._seq, b), key=lambda e: (e[0], e[1]))

    def find_conflict(self, candidate: Booking,
                      exclude_id: Optional[str] = None) -> Optional[Booking]:
        """
        Earliest-inserted clashing booking across both resources. Matches
        find_conflict() over the same snapshot when the snapshot is ordered
        by start_at, which is how the repository returns it.
        """
        best = None
        for key in self._keys(candidate):
            entries = self.booked.get(key, [])
            # Only entries starting before the candidate ends can overlap.
            stop = bisect.bisect_left(entries, candidate.end_at, key=lambda e: e[0])
            for start, seq, b in entries[:stop]:
                if exclude_id is not None and b.id == exclude_id:
                    continue
                if b.end_at > candidate.start_at:
                    if best is None or seq < best[0]:
                        best = (seq, b)
                    break
        return best[1] if best else None
