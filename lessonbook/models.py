from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Numeric, JSON, Text,
    Index, Enum as SAEnum
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from lessonbook.scheduling.types import BookingStatus

Base = declarative_base()


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


# ── Reference data (display only) ─────────────────────────────────────────────

class Student(Base):
    __tablename__ = "students"

    id = Column(String, primary_key=True)              # e.g. "S123"
    school_id = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Instructor(Base):
    __tablename__ = "instructors"

    id = Column(String, primary_key=True)              # e.g. "I045"
    school_id = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(String, primary_key=True)              # e.g. "V02"
    school_id = Column(String, nullable=False, index=True)
    make = Column(String, nullable=False)              # e.g. "VW Golf"
    license_plate = Column(String, nullable=True)
    transmission = Column(String, default="manual")    # "manual" | "automatic"
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


# ── Bookings ──────────────────────────────────────────────────────────────────

class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)              # uuid4 hex
    school_id = Column(String, nullable=False)
    student_id = Column(String, nullable=False)
    instructor_id = Column(String, nullable=False)
    vehicle_id = Column(String, nullable=True)

    start_at = Column(DateTime(timezone=True), nullable=False)   # stored in UTC
    end_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        SAEnum(BookingStatus, name="booking_status", values_callable=_enum_values),
        nullable=False, default=BookingStatus.PENDING,
    )

    lesson_type = Column(String, nullable=False, default="standard")
    price = Column(Numeric(10, 2), nullable=True)
    pickup_location = Column(String, default="")
    notes = Column(Text, default="")

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Bumped on every UPDATE; SQLAlchemy adds "AND version = :old" to the
    # statement and raises StaleDataError when another writer got there first.
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_bookings_school_start", "school_id", "start_at"),
        Index("ix_bookings_instructor_start", "instructor_id", "start_at"),
        Index("ix_bookings_student_start", "student_id", "start_at"),
    )


# ── Ingestion tracking ────────────────────────────────────────────────────────

class IngestionRun(Base):
    __tablename__ = "ingestion_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_at = Column(DateTime, server_default=func.now())
    source_hash = Column(String, nullable=False)       # hash of input files
    status = Column(String, default="success")
    diff_summary = Column(JSON, default=dict)          # what changed
