"""
Booking service — the only path by which scheduling decisions reach the store.

Every mutation runs as:
  1. take the serialized section for the instructor + student involved
  2. read every overlapping booking of that instructor or student
  3. validate (range → past → conflict)
  4. commit; updates carry the version they were validated against

If another process changed the booking between 2 and 4 the repository
raises StaleBookingError and we go round again from 1, up to max_attempts.
Nothing is written when validation fails.

The serialized section in step 1 is process-local. Creates have no stored
version to compare, so the API must run as a single worker process
(run_api.py starts exactly one).
"""
import logging
from dataclasses import replace
from typing import Optional

from lessonbook.booking.locks import ResourceLocks, resource_keys
from lessonbook.booking.repository import BookingRepository
from lessonbook.config import settings
from lessonbook.scheduling import status as status_machine
from lessonbook.scheduling.changes import compute_changes, merge_patch
from lessonbook.scheduling.clock import SystemClock
from lessonbook.scheduling.conflicts import blocking_statuses
from lessonbook.scheduling.errors import (
    BookingNotFoundError, ConcurrentModificationError, StaleBookingError,
)
from lessonbook.scheduling.types import Booking, BookingStatus, Operation, StatusAction
from lessonbook.scheduling.validator import validate_booking

logger = logging.getLogger(__name__)


class BookingService:
    """Service for booking lifecycle operations."""

    def __init__(
        self,
        repository: BookingRepository,
        clock=None,
        locks: Optional[ResourceLocks] = None,
        max_attempts: Optional[int] = None,
        block_on_inactive: Optional[bool] = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or SystemClock()
        self.locks = locks or ResourceLocks()
        self.max_attempts = max_attempts or settings.MAX_COMMIT_ATTEMPTS
        if block_on_inactive is None:
            block_on_inactive = settings.BLOCK_ON_INACTIVE_STATUSES
        self._ignore_statuses = blocking_statuses(block_on_inactive)

    # ── Reads ────────────────────────────────────────────────────────────────

    def get_booking(self, booking_id: str) -> Booking:
        """Return a booking by ID.

        Raises:
            BookingNotFoundError: If the booking does not exist.
        """
        booking = self.repository.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def _snapshot(self, booking: Booking) -> list[Booking]:
        # Only bookings on the same instructor or student inside the window
        # can conflict. The read is not capped.
        return self.repository.list_for_resources(
            booking.school_id,
            instructor_ids=[booking.instructor_id],
            student_ids=[booking.student_id],
            start=booking.start_at, end=booking.end_at,
        )

    def validate(self, op: Operation, booking: Booking) -> None:
        """Dry run against the latest state; raises exactly what a commit would."""
        op = Operation(op)
        original = None
        if op is not Operation.CREATE:
            original = self.get_booking(booking.id)
        validate_booking(op, booking, self._snapshot(booking), self.clock.now(),
                         original=original, ignore_statuses=self._ignore_statuses)

    # ── Mutations ────────────────────────────────────────────────────────────

    def create_booking(self, draft: Booking) -> Booking:
        draft = replace(draft, id=None, status=BookingStatus.PENDING, version=0,
                        confirmed_at=None, completed_at=None, cancelled_at=None)

        with self.locks.hold(resource_keys(draft)):
            validate_booking(Operation.CREATE, draft, self._snapshot(draft),
                             self.clock.now(), ignore_statuses=self._ignore_statuses)
            created = self.repository.create(draft)

        logger.info("Created booking %s (instructor=%s student=%s %s)",
                    created.id, created.instructor_id, created.student_id,
                    created.start_at.isoformat())
        return created

    def update_booking(self, booking_id: str, patch: dict,
                       op: Operation = Operation.UPDATE) -> Booking:
        """Form edit (op=update) or drag-and-drop (op=move) of time/resources/details."""
        op = Operation(op)
        for attempt in range(1, self.max_attempts + 1):
            stored = self.get_booking(booking_id)
            candidate = merge_patch(stored, patch)
            changes = compute_changes(stored, candidate)
            if not changes:
                return stored

            with self.locks.hold(resource_keys(stored, candidate)):
                validate_booking(op, candidate, self._snapshot(candidate),
                                 self.clock.now(), original=stored,
                                 ignore_statuses=self._ignore_statuses)
                try:
                    updated = self.repository.update(
                        booking_id,
                        {key: change["new"] for key, change in changes.items()},
                        expected_version=stored.version,
                    )
                except StaleBookingError:
                    logger.warning("Booking %s changed during %s (attempt %d/%d), re-validating",
                                   booking_id, op.value, attempt, self.max_attempts)
                    continue

            logger.info("Booking %s %s: %s", booking_id, op.value, sorted(changes))
            return updated

        raise ConcurrentModificationError(booking_id)

    def move_booking(self, booking_id: str, patch: dict) -> Booking:
        return self.update_booking(booking_id, patch, op=Operation.MOVE)

    def apply_status(self, booking_id: str, action: StatusAction) -> Booking:
        action = StatusAction(action)
        stamped_field = status_machine.STAMPED_FIELDS[action]

        for attempt in range(1, self.max_attempts + 1):
            stored = self.get_booking(booking_id)
            moved = status_machine.apply_status(stored, action, self.clock.now())
            try:
                return self.repository.update(
                    booking_id,
                    {"status": moved.status, stamped_field: getattr(moved, stamped_field)},
                    expected_version=stored.version,
                )
            except StaleBookingError:
                logger.warning("Booking %s changed during %s (attempt %d/%d), retrying",
                               booking_id, action.value, attempt, self.max_attempts)

        raise ConcurrentModificationError(booking_id)
