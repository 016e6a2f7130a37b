"""
FastAPI app — booking scheduler endpoints:
  POST  /bookings                  create (validated)
  PATCH /bookings/{id}             form edit (validated)
  POST  /bookings/{id}/move        drag-and-drop reschedule (validated)
  POST  /bookings/{id}/status      confirm / complete / cancel
  POST  /bookings/validate         dry run
  GET   /calendar/{kind}           day | week | list view
  GET   /stats/today               today's counters
  POST  /ingest/run                reference-data import
"""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from lessonbook.api.schemas import (
    BookingCreate, BookingOut, BookingPatch, StatusChange, ValidateRequest,
)
from lessonbook.booking.repository import SqlAlchemyBookingRepository, SqlAlchemyDirectory
from lessonbook.booking.service import BookingService
from lessonbook.config import settings
from lessonbook.database import SessionLocal, get_db, init_db
from lessonbook.ingestion.job import run_ingestion
from lessonbook.log import setup_logging
from lessonbook.observability.metrics import find_double_bookings, get_day_stats
from lessonbook.scheduling.calendar import (
    CalendarFilters, ViewKind, build_calendar_view, shift_anchor,
)
from lessonbook.scheduling.changes import merge_patch
from lessonbook.scheduling.errors import DomainError, ErrorCode
from lessonbook.scheduling.lesson_types import LESSON_TYPES, default_end
from lessonbook.scheduling.slots import week_dates
from lessonbook.scheduling.status import allowed_actions
from lessonbook.scheduling.types import Booking, BookingStatus, Operation

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down")


app = FastAPI(title=settings.PROJECT_NAME, version="1.0.0", lifespan=lifespan)


# ── Dependencies ──────────────────────────────────────────────────────────────

@lru_cache
def get_service() -> BookingService:
    """One service per process so every request shares the same resource locks."""
    return BookingService(SqlAlchemyBookingRepository(SessionLocal))


@lru_cache
def get_directory() -> SqlAlchemyDirectory:
    return SqlAlchemyDirectory(SessionLocal)


def get_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


# ── Error mapping ─────────────────────────────────────────────────────────────

HTTP_STATUS = {
    ErrorCode.INVALID_TIME_RANGE: 422,
    ErrorCode.PAST_START: 422,
    ErrorCode.UNKNOWN_LESSON_TYPE: 422,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.STALE_VERSION: 409,
    ErrorCode.CONCURRENT_MODIFICATION: 409,
    ErrorCode.NOT_FOUND: 404,
}


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=HTTP_STATUS.get(exc.code, 400),
        content={"code": exc.code.value, "message": exc.message, **exc.details()},
    )


# ── Bookings ──────────────────────────────────────────────────────────────────

def _draft_from(body: BookingCreate) -> Booking:
    end_at = body.end_at or default_end(body.start_at, body.lesson_type)
    return Booking(
        school_id=body.school_id,
        student_id=body.student_id,
        instructor_id=body.instructor_id,
        vehicle_id=body.vehicle_id,
        start_at=body.start_at,
        end_at=end_at,
        lesson_type=body.lesson_type,
        price=body.price,
        pickup_location=body.pickup_location,
        notes=body.notes,
    )


def patch_to_dict(patch: Optional[BookingPatch]) -> dict:
    return patch.model_dump(exclude_unset=True) if patch else {}


def _out(booking: Booking) -> BookingOut:
    return BookingOut.model_validate(booking)


@app.post("/bookings", status_code=201, response_model=BookingOut)
def create_booking(body: BookingCreate, service: BookingService = Depends(get_service)):
    return _out(service.create_booking(_draft_from(body)))


@app.get("/bookings", response_model=list[BookingOut])
def list_bookings(
    school_id: str,
    status: Optional[BookingStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
    service: BookingService = Depends(get_service),
):
    bookings = service.repository.list_active(
        school_id, statuses=[status] if status else None, start=start, end=end, limit=limit,
    )
    return [_out(b) for b in bookings]


@app.post("/bookings/validate")
def validate_booking(body: ValidateRequest, service: BookingService = Depends(get_service)):
    """
    Same checks as the real write, without writing. Returns {"ok": true} or
    the error a commit would have produced.
    """
    if body.op is Operation.CREATE:
        if body.booking is None:
            raise HTTPException(status_code=422, detail="booking is required for create")
        candidate = _draft_from(body.booking)
    else:
        if not body.booking_id:
            raise HTTPException(status_code=422, detail="booking_id is required")
        stored = service.get_booking(body.booking_id)
        candidate = merge_patch(stored, patch_to_dict(body.patch))

    service.validate(body.op, candidate)
    return {"ok": True}


@app.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, service: BookingService = Depends(get_service)):
    return _out(service.get_booking(booking_id))


@app.patch("/bookings/{booking_id}", response_model=BookingOut)
def update_booking(booking_id: str, body: BookingPatch,
                   service: BookingService = Depends(get_service)):
    return _out(service.update_booking(booking_id, patch_to_dict(body)))


@app.post("/bookings/{booking_id}/move", response_model=BookingOut)
def move_booking(booking_id: str, body: BookingPatch,
                 service: BookingService = Depends(get_service)):
    return _out(service.move_booking(booking_id, patch_to_dict(body)))


@app.post("/bookings/{booking_id}/status", response_model=BookingOut)
def change_status(booking_id: str, body: StatusChange,
                  service: BookingService = Depends(get_service)):
    return _out(service.apply_status(booking_id, body.action))


@app.get("/bookings/{booking_id}/actions")
def booking_actions(booking_id: str, service: BookingService = Depends(get_service)):
    """Status actions the UI may offer for this booking."""
    booking = service.get_booking(booking_id)
    return {"status": booking.status.value,
            "actions": [a.value for a in allowed_actions(booking.status)]}


# ── Calendar ──────────────────────────────────────────────────────────────────

def _window(kind: ViewKind, anchor: date, tz: ZoneInfo):
    """[start, end) of the bookings a view needs; None for the list view."""
    if kind is ViewKind.DAY:
        days = [anchor]
    elif kind is ViewKind.WEEK:
        days = week_dates(anchor, settings.WEEK_STARTS_ON)
    else:
        return None, None
    start = datetime.combine(days[0], time(0), tzinfo=tz)
    end = datetime.combine(days[-1] + timedelta(days=1), time(0), tzinfo=tz)
    return start, end


@app.get("/calendar/{kind}")
def calendar_view(
    kind: ViewKind,
    school_id: str,
    anchor: Optional[date] = None,
    instructor_id: Optional[str] = None,
    student_id: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    search: str = "",
    service: BookingService = Depends(get_service),
    directory: SqlAlchemyDirectory = Depends(get_directory),
    tz: ZoneInfo = Depends(get_tz),
):
    anchor = anchor or service.clock.now().astimezone(tz).date()
    start, end = _window(kind, anchor, tz)
    bookings = service.repository.list_active(school_id, start=start, end=end)

    view = build_calendar_view(
        kind, bookings,
        CalendarFilters(instructor_id=instructor_id, student_id=student_id,
                        status=status, search=search),
        anchor,
        students=directory.students(school_id),
        instructors=directory.instructors(school_id),
        tz=tz,
        week_starts_on=settings.WEEK_STARTS_ON,
    )
    view["previous"] = shift_anchor(kind, anchor, -1)
    view["next"] = shift_anchor(kind, anchor, 1)
    return view


@app.get("/lesson-types")
def lesson_types():
    return [
        {"id": lt.id, "name": lt.name, "duration_minutes": lt.duration_minutes}
        for lt in LESSON_TYPES.values()
    ]


# ── Stats ─────────────────────────────────────────────────────────────────────

@app.get("/stats/today")
def stats_today(school_id: str, service: BookingService = Depends(get_service),
                tz: ZoneInfo = Depends(get_tz)):
    today = service.clock.now().astimezone(tz).date()
    start, end = _window(ViewKind.DAY, today, tz)
    bookings = service.repository.list_active(school_id, start=start, end=end)
    return get_day_stats(bookings, today, tz)


@app.get("/stats/double-bookings")
def stats_double_bookings(school_id: str, service: BookingService = Depends(get_service)):
    """Audit of stored bookings against the no-overlap rule. Should always be empty."""
    violations = find_double_bookings(list(service.repository.iter_all(school_id)))
    if violations:
        logger.error("Double bookings found for school %s: %s", school_id, violations)
    return {"total_violations": len(violations), "violations": violations}


# ── Ingestion ─────────────────────────────────────────────────────────────────

@app.post("/ingest/run")
def ingest_run(force: bool = False, db: Session = Depends(get_db)):
    """
    Import students / instructors / vehicles from DATA_DIR.
    Idempotent (skips if unchanged unless force=True).
    """
    return run_ingestion(db, force=force)


# ── Health check ──────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "endpoints": ["/bookings", "/calendar/{kind}", "/stats/today", "/ingest/run"],
    }


@app.get("/health")
def health(service: BookingService = Depends(get_service)):
    return {"status": "ok", "time": service.clock.now().isoformat()}
