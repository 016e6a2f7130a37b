"""
BookingService against a real (in-memory SQLite) store: validation before
write, status edges, optimistic retries.

  pytest lessonbook/booking/test_service.py
"""
import threading
from datetime import timedelta

import pytest

from lessonbook.booking.locks import ResourceLocks, resource_keys
from lessonbook.booking.repository import SqlAlchemyBookingRepository
from lessonbook.booking.service import BookingService
from lessonbook.observability.metrics import find_double_bookings
from lessonbook.scheduling.errors import (
    BookingConflictError, BookingNotFoundError, ConcurrentModificationError,
    InvalidTimeRangeError, InvalidTransitionError, PastStartError, StaleBookingError,
)
from lessonbook.scheduling.types import BookingStatus, Operation, StatusAction


# ── Create ────────────────────────────────────────────────────────────────────

def test_create_stores_pending_booking(service, repository, draft):
    created = service.create_booking(draft(hour=10))

    assert created.id
    assert created.status is BookingStatus.PENDING
    assert created.version == 1
    assert repository.get(created.id) == created


def test_create_ignores_caller_status(service, draft):
    created = service.create_booking(draft(status=BookingStatus.COMPLETED))
    assert created.status is BookingStatus.PENDING
    assert created.completed_at is None


def test_conflicting_create_writes_nothing(service, repository, draft):
    first = service.create_booking(draft(hour=10))
    with pytest.raises(BookingConflictError) as exc:
        service.create_booking(draft(hour=10, student_id="S2"))
    assert exc.value.conflicting_booking_id == first.id
    assert len(repository.list_active("school-1")) == 1


def test_past_create_rejected(service, clock, draft):
    with pytest.raises(PastStartError):
        service.create_booking(draft(day=clock.now().date() - timedelta(days=1)))


def test_schools_do_not_see_each_other(service, draft):
    service.create_booking(draft(hour=10))
    other = service.create_booking(draft(hour=10, school_id="school-2"))
    assert other.id


def test_cancelled_slot_can_be_rebooked(service, draft):
    first = service.create_booking(draft(hour=10))
    service.apply_status(first.id, StatusAction.CANCEL)
    assert service.create_booking(draft(hour=10)).id != first.id


# ── Update / move ─────────────────────────────────────────────────────────────

def test_move_to_free_slot(service, draft):
    b = service.create_booking(draft(hour=10))
    moved = service.move_booking(b.id, {
        "start_at": b.start_at + timedelta(hours=2),
        "end_at": b.end_at + timedelta(hours=2),
    })
    assert moved.start_at == b.start_at + timedelta(hours=2)
    assert moved.version == b.version + 1


def test_move_onto_conflict_keeps_stored_booking(service, repository, draft):
    a = service.create_booking(draft(hour=10))
    b = service.create_booking(draft(hour=12, student_id="S2"))

    with pytest.raises(BookingConflictError) as exc:
        service.move_booking(b.id, {"start_at": a.start_at, "end_at": a.end_at})
    assert exc.value.conflicting_booking_id == a.id
    assert repository.get(b.id) == b


def test_extending_own_booking_is_not_a_conflict(service, draft):
    b = service.create_booking(draft(hour=10))
    longer = service.update_booking(b.id, {"end_at": b.end_at + timedelta(minutes=30)})
    assert longer.duration_minutes == 90


def test_update_invalid_range(service, draft):
    b = service.create_booking(draft(hour=10))
    with pytest.raises(InvalidTimeRangeError):
        service.update_booking(b.id, {"end_at": b.start_at})


def test_noop_update_keeps_version(service, draft):
    b = service.create_booking(draft(hour=10, notes="x"))
    assert service.update_booking(b.id, {"notes": "x"}).version == b.version


def test_notes_edit_on_started_booking(service, clock, draft):
    b = service.create_booking(draft(hour=10))
    clock.set(b.start_at + timedelta(minutes=10))
    assert service.update_booking(b.id, {"notes": "late start"}).notes == "late start"
    with pytest.raises(PastStartError):
        service.move_booking(b.id, {"start_at": b.start_at + timedelta(minutes=5)})


def test_reassign_instructor_checks_new_instructor(service, draft):
    service.create_booking(draft(hour=10, instructor_id="I2", student_id="S2"))
    b = service.create_booking(draft(hour=10))
    with pytest.raises(BookingConflictError):
        service.update_booking(b.id, {"instructor_id": "I2"})


def test_unknown_field_rejected(service, draft):
    b = service.create_booking(draft(hour=10))
    with pytest.raises(ValueError):
        service.update_booking(b.id, {"status": "completed"})


def test_missing_booking(service):
    with pytest.raises(BookingNotFoundError):
        service.get_booking("nope")
    with pytest.raises(BookingNotFoundError):
        service.update_booking("nope", {"notes": "x"})
    with pytest.raises(BookingNotFoundError):
        service.apply_status("nope", StatusAction.CONFIRM)


def test_dry_run_validate(service, draft):
    a = service.create_booking(draft(hour=10))
    service.validate(Operation.CREATE, draft(hour=11))
    with pytest.raises(BookingConflictError):
        service.validate(Operation.CREATE, draft(hour=10))
    service.validate(Operation.UPDATE, a)


# ── Status ────────────────────────────────────────────────────────────────────

def test_status_lifecycle_stamps_times(service, clock, draft):
    b = service.create_booking(draft(hour=10))
    confirmed = service.apply_status(b.id, StatusAction.CONFIRM)
    assert confirmed.status is BookingStatus.CONFIRMED
    assert confirmed.confirmed_at == clock.now()

    clock.set(b.end_at)
    done = service.apply_status(b.id, StatusAction.COMPLETE)
    assert done.status is BookingStatus.COMPLETED
    assert done.completed_at == b.end_at

    with pytest.raises(InvalidTransitionError):
        service.apply_status(b.id, StatusAction.CANCEL)


def test_pending_cannot_complete(service, draft):
    b = service.create_booking(draft(hour=10))
    with pytest.raises(InvalidTransitionError):
        service.apply_status(b.id, StatusAction.COMPLETE)
    assert service.get_booking(b.id).status is BookingStatus.PENDING


# ── Concurrency ───────────────────────────────────────────────────────────────

class FlakyRepository:
    """Wraps a repository; the first `failures` updates report a stale version."""

    def __init__(self, inner, failures):
        self.inner = inner
        self.failures = failures
        self.update_calls = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update(self, booking_id, patch, expected_version=None):
        self.update_calls += 1
        if self.update_calls <= self.failures:
            raise StaleBookingError(booking_id)
        return self.inner.update(booking_id, patch, expected_version)


def test_stale_write_is_revalidated_and_retried(repository, clock, draft):
    flaky = FlakyRepository(repository, failures=2)
    service = BookingService(flaky, clock=clock, max_attempts=3)
    b = service.create_booking(draft(hour=10))

    moved = service.move_booking(b.id, {"start_at": b.start_at + timedelta(hours=1),
                                        "end_at": b.end_at + timedelta(hours=1)})
    assert flaky.update_calls == 3
    assert moved.start_at == b.start_at + timedelta(hours=1)


def test_retries_exhausted(repository, clock, draft):
    flaky = FlakyRepository(repository, failures=10)
    service = BookingService(flaky, clock=clock, max_attempts=3)
    b = service.create_booking(draft(hour=10))

    with pytest.raises(ConcurrentModificationError):
        service.apply_status(b.id, StatusAction.CONFIRM)
    assert flaky.update_calls == 3


def test_repository_rejects_old_version(repository, service, draft):
    b = service.create_booking(draft(hour=10))
    repository.update(b.id, {"notes": "first"}, expected_version=b.version)
    with pytest.raises(StaleBookingError):
        repository.update(b.id, {"notes": "second"}, expected_version=b.version)


def test_parallel_creates_never_double_book(service, repository, draft):
    errors = []

    def book(student):
        try:
            service.create_booking(draft(hour=10, student_id=student))
        except BookingConflictError as e:
            errors.append(e)

    threads = [threading.Thread(target=book, args=(f"S{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = repository.list_active("school-1")
    assert len(stored) == 1
    assert len(errors) == 7
    assert find_double_bookings(stored) == []


def test_no_overlap_after_mixed_sequence(service, repository, draft):
    ids = []
    for hour, instructor, student in [(9, "I1", "S1"), (10, "I1", "S2"), (9, "I2", "S3"),
                                      (11, "I2", "S1"), (10, "I1", "S3")]:
        try:
            ids.append(service.create_booking(draft(hour=hour, instructor_id=instructor,
                                                    student_id=student)).id)
        except BookingConflictError:
            pass
    for booking_id in ids:
        try:
            service.update_booking(booking_id, {"instructor_id": "I1"})
        except BookingConflictError:
            pass

    assert find_double_bookings(repository.list_active("school-1")) == []


def test_resource_keys_sorted_and_deduplicated(draft):
    a = draft(instructor_id="I2", student_id="S1")
    b = draft(instructor_id="I1", student_id="S1")
    assert resource_keys(a, b, None) == [
        ("instructor", "school-1", "I1"),
        ("instructor", "school-1", "I2"),
        ("student", "school-1", "S1"),
    ]


def test_locks_are_released_on_error():
    locks = ResourceLocks()
    keys = [("instructor", "school-1", "I1")]
    with pytest.raises(RuntimeError):
        with locks.hold(keys):
            raise RuntimeError("boom")
    with locks.hold(keys):
        pass


def test_busy_school_cannot_hide_a_conflict(session_factory, clock, draft):
    repository = SqlAlchemyBookingRepository(session_factory, list_limit=2)
    service = BookingService(repository, clock=clock)

    # Two unrelated lessons that start earlier and overlap the window fill the cap.
    service.create_booking(draft(hour=9, minutes=90, instructor_id="IA", student_id="SA"))
    service.create_booking(draft(hour=9, minutes=90, instructor_id="IB", student_id="SB"))
    first = service.create_booking(draft(hour=10))

    with pytest.raises(BookingConflictError) as exc:
        service.create_booking(draft(hour=10, student_id="S2"))
    assert exc.value.conflicting_booking_id == first.id
    assert find_double_bookings(list(repository.iter_all("school-1"))) == []
