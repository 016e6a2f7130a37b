"""
Shared fixtures. The store is an in-memory SQLite database, so no Postgres
is needed to run the suite:

  pytest
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lessonbook.booking.repository import SqlAlchemyBookingRepository
from lessonbook.booking.service import BookingService
from lessonbook.database import init_db
from lessonbook.scheduling.clock import FixedClock
from lessonbook.scheduling.types import Booking

# Monday 2024-06-03 08:00 UTC
NOW = datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False,
                       expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return SqlAlchemyBookingRepository(session_factory)


@pytest.fixture
def service(repository, clock):
    return BookingService(repository, clock=clock)


@pytest.fixture
def draft():
    """Factory for unsaved bookings: draft(hour=10, minutes=60, instructor_id="I1", ...)."""
    def _draft(hour=10, minutes=60, day=NOW.date() + timedelta(days=1), **kw):
        start = datetime(day.year, day.month, day.day, hour, 0, tzinfo=timezone.utc)
        values = {
            "school_id": "school-1",
            "student_id": "S1",
            "instructor_id": "I1",
            "start_at": start,
            "end_at": start + timedelta(minutes=minutes),
        }
        values.update(kw)
        return Booking(**values)
    return _draft
