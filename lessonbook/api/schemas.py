from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict

from lessonbook.scheduling.types import BookingStatus, Operation, StatusAction


# ── Incoming ──────────────────────────────────────────────────────────────────

class BookingCreate(BaseModel):
    school_id: str
    student_id: str
    instructor_id: str
    start_at: AwareDatetime
    end_at: Optional[AwareDatetime] = None      # None → start + lesson duration
    vehicle_id: Optional[str] = None
    lesson_type: str = "standard"
    price: Optional[Decimal] = None
    pickup_location: str = ""
    notes: str = ""


class BookingPatch(BaseModel):
    """Only the fields actually sent are applied (model_dump(exclude_unset=True))."""
    start_at: Optional[AwareDatetime] = None
    end_at: Optional[AwareDatetime] = None
    instructor_id: Optional[str] = None
    student_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    lesson_type: Optional[str] = None
    price: Optional[Decimal] = None
    pickup_location: Optional[str] = None
    notes: Optional[str] = None


class StatusChange(BaseModel):
    action: StatusAction


class ValidateRequest(BaseModel):
    op: Operation
    booking_id: Optional[str] = None            # required for update / move
    booking: Optional[BookingCreate] = None     # create
    patch: Optional[BookingPatch] = None        # update / move


# ── Outgoing ──────────────────────────────────────────────────────────────────

class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    school_id: str
    student_id: str
    instructor_id: str
    vehicle_id: Optional[str]
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    lesson_type: str
    price: Optional[Decimal]
    pickup_location: str
    notes: str
    confirmed_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    version: int
    duration_minutes: int
