"""
Booking store (repository pattern).

The scheduling core never talks to the database; it is handed snapshots
from here and commits through here. Stores must be swappable and return
domain records, never ORM rows.
"""
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from lessonbook.config import settings
from lessonbook.models import BookingRow, Instructor, Student
from lessonbook.scheduling.changes import EDITABLE_FIELDS
from lessonbook.scheduling.errors import BookingNotFoundError, StaleBookingError
from lessonbook.scheduling.status import STAMPED_FIELDS
from lessonbook.scheduling.types import Booking, BookingStatus, Person

UPDATABLE_FIELDS = frozenset(EDITABLE_FIELDS) | {"status"} | set(STAMPED_FIELDS.values())
_TIME_FIELDS = ("start_at", "end_at", "confirmed_at", "completed_at", "cancelled_at")


class BookingRepository(ABC):
    """Interface for booking persistence operations."""

    @abstractmethod
    def create(self, draft: Booking) -> Booking:
        """Store draft as a new pending booking and return it with id and version."""
        ...

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        """Return a booking by ID, or None if not found."""
        ...

    @abstractmethod
    def update(self, booking_id: str, patch: dict,
               expected_version: Optional[int] = None) -> Booking:
        """Apply patch and bump the version.

        Raises:
            BookingNotFoundError: If the booking does not exist.
            StaleBookingError: If expected_version no longer matches.
        """
        ...

    @abstractmethod
    def list_active(self, school_id: str,
                    statuses: Optional[Iterable[BookingStatus]] = None,
                    start: Optional[datetime] = None,
                    end: Optional[datetime] = None,
                    limit: Optional[int] = None) -> list[Booking]:
        """Bookings of one school ordered by start_at, at most `limit` of them.

        start/end keep only bookings overlapping [start, end).
        """
        ...

    @abstractmethod
    def list_for_resources(self, school_id: str,
                           instructor_ids: Iterable[str],
                           student_ids: Iterable[str],
                           start: datetime, end: datetime) -> list[Booking]:
        """Every booking overlapping [start, end) that holds one of the given
        instructors or students, ordered by start_at. Never truncated: this
        is the snapshot conflicts are checked against.
        """
        ...

    @abstractmethod
    def iter_all(self, school_id: str, batch_size: Optional[int] = None) -> Iterator[Booking]:
        """All bookings of one school ordered by (start_at, id), read page by page."""
        ...

    @abstractmethod
    def delete(self, booking_id: str) -> None:
        """Physically remove a booking. Not used by scheduling."""
        ...


# ── SQLAlchemy implementation ─────────────────────────────────────────────────

def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise to aware UTC. Naive values coming back from the DB are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_domain(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        school_id=row.school_id,
        student_id=row.student_id,
        instructor_id=row.instructor_id,
        vehicle_id=row.vehicle_id,
        start_at=_utc(row.start_at),
        end_at=_utc(row.end_at),
        status=BookingStatus(row.status),
        lesson_type=row.lesson_type,
        price=row.price,
        pickup_location=row.pickup_location or "",
        notes=row.notes or "",
        confirmed_at=_utc(row.confirmed_at),
        completed_at=_utc(row.completed_at),
        cancelled_at=_utc(row.cancelled_at),
        version=row.version,
    )


class SqlAlchemyBookingRepository(BookingRepository):
    """Relational booking store. One session per call; commit or roll back as a unit."""

    def __init__(self, session_factory: sessionmaker, list_limit: Optional[int] = None):
        self._session_factory = session_factory
        self._list_limit = list_limit or settings.BOOKING_LIST_LIMIT

    def create(self, draft: Booking) -> Booking:
        row = BookingRow(
            id=uuid.uuid4().hex,
            school_id=draft.school_id,
            student_id=draft.student_id,
            instructor_id=draft.instructor_id,
            vehicle_id=draft.vehicle_id,
            start_at=_utc(draft.start_at),
            end_at=_utc(draft.end_at),
            status=BookingStatus.PENDING,
            lesson_type=draft.lesson_type,
            price=draft.price,
            pickup_location=draft.pickup_location,
            notes=draft.notes,
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            return _to_domain(row)

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._session_factory() as db:
            row = db.get(BookingRow, booking_id)
            return _to_domain(row) if row else None

    def update(self, booking_id: str, patch: dict,
               expected_version: Optional[int] = None) -> Booking:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        with self._session_factory() as db:
            row = db.get(BookingRow, booking_id)
            if row is None:
                raise BookingNotFoundError(booking_id)
            if expected_version is not None and row.version != expected_version:
                raise StaleBookingError(booking_id)

            for key, value in patch.items():
                if key in _TIME_FIELDS:
                    value = _utc(value)
                elif key == "status":
                    value = BookingStatus(value)
                setattr(row, key, value)

            try:
                db.commit()
            except StaleDataError:
                db.rollback()
                raise StaleBookingError(booking_id) from None
            return _to_domain(row)

    def list_active(self, school_id: str,
                    statuses: Optional[Iterable[BookingStatus]] = None,
                    start: Optional[datetime] = None,
                    end: Optional[datetime] = None,
                    limit: Optional[int] = None) -> list[Booking]:
        with self._session_factory() as db:
            query = db.query(BookingRow).filter(BookingRow.school_id == school_id)
            if statuses:
                query = query.filter(BookingRow.status.in_([BookingStatus(s) for s in statuses]))
            if start is not None:
                query = query.filter(BookingRow.end_at > _utc(start))
            if end is not None:
                query = query.filter(BookingRow.start_at < _utc(end))
            rows = (
                query.order_by(BookingRow.start_at, BookingRow.id)
                .limit(limit or self._list_limit)
                .all()
            )
            return [_to_domain(r) for r in rows]

    def list_for_resources(self, school_id: str,
                           instructor_ids: Iterable[str],
                           student_ids: Iterable[str],
                           start: datetime, end: datetime) -> list[Booking]:
        with self._session_factory() as db:
            rows = (
                db.query(BookingRow)
                .filter(
                    BookingRow.school_id == school_id,
                    or_(BookingRow.instructor_id.in_(set(instructor_ids)),
                        BookingRow.student_id.in_(set(student_ids))),
                    BookingRow.end_at > _utc(start),
                    BookingRow.start_at < _utc(end),
                )
                .order_by(BookingRow.start_at, BookingRow.id)
                .all()
            )
            return [_to_domain(r) for r in rows]

    def iter_all(self, school_id: str, batch_size: Optional[int] = None) -> Iterator[Booking]:
        batch_size = batch_size or self._list_limit
        last = None
        while True:
            with self._session_factory() as db:
                query = db.query(BookingRow).filter(BookingRow.school_id == school_id)
                if last is not None:
                    # keyset paging: strictly after the last (start_at, id) seen
                    query = query.filter(or_(
                        BookingRow.start_at > _utc(last.start_at),
                        and_(BookingRow.start_at == _utc(last.start_at),
                             BookingRow.id > last.id),
                    ))
                rows = (
                    query.order_by(BookingRow.start_at, BookingRow.id)
                    .limit(batch_size)
                    .all()
                )
                page = [_to_domain(r) for r in rows]

            yield from page
            if len(page) < batch_size:
                return
            last = page[-1]

    def delete(self, booking_id: str) -> None:
        with self._session_factory() as db:
            row = db.get(BookingRow, booking_id)
            if row is None:
                raise BookingNotFoundError(booking_id)
            db.delete(row)
            db.commit()


# ── Reference data ────────────────────────────────────────────────────────────

class SqlAlchemyDirectory:
    """Student/instructor names for search and day-view columns. May be stale."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def students(self, school_id: str) -> list[Person]:
        with self._session_factory() as db:
            rows = db.query(Student).filter(Student.school_id == school_id).all()
            return [Person(id=r.id, full_name=r.full_name, is_active=bool(r.is_active))
                    for r in rows]

    def instructors(self, school_id: str) -> list[Person]:
        with self._session_factory() as db:
            rows = (
                db.query(Instructor)
                .filter(Instructor.school_id == school_id)
                .order_by(Instructor.full_name)
                .all()
            )
            return [Person(id=r.id, full_name=r.full_name, is_active=bool(r.is_active))
                    for r in rows]
