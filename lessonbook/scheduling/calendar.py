"""
Calendar projection — turns a flat list of bookings into week / day / list
views.

  week : 7 day columns × 28 half-hour slots (07:00–20:30)
  day  : one date, one column per instructor (the filtered one, or every
         active instructor) × the same slots
  list : bookings grouped by local start date, dates ascending, each group
         ordered by start time

A booking lands in every slot cell its [start_at, end_at) overlaps, so a
90-minute lesson fills three cells. Pure: no I/O, inputs are never modified.
"""
import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from lessonbook.scheduling.conflicts import overlaps
from lessonbook.scheduling.slots import (
    format_time, get_day_name, local_date, slot_bounds, time_slots, week_dates,
)
from lessonbook.scheduling.types import Booking, BookingStatus, Person


class ViewKind(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    LIST = "list"


@dataclass(frozen=True)
class CalendarFilters:
    instructor_id: Optional[str] = None     # None = all instructors
    student_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    search: str = ""


# ── Filtering ─────────────────────────────────────────────────────────────────

def _matches_search(booking: Booking, query: str,
                    student_names: dict, instructor_names: dict) -> bool:
    haystack = (
        student_names.get(booking.student_id, ""),
        instructor_names.get(booking.instructor_id, ""),
        booking.pickup_location or "",
        booking.notes or "",
    )
    return any(query in text.lower() for text in haystack)


def filter_bookings(
    bookings: Iterable[Booking],
    filters: CalendarFilters,
    students: Iterable[Person] = (),
    instructors: Iterable[Person] = (),
) -> list[Booking]:
    """Apply search, instructor, status and student filters; keeps input order."""
    query = filters.search.strip().lower()
    student_names = {p.id: p.full_name for p in students}
    instructor_names = {p.id: p.full_name for p in instructors}

    result = []
    for b in bookings:
        if query and not _matches_search(b, query, student_names, instructor_names):
            continue
        if filters.instructor_id and b.instructor_id != filters.instructor_id:
            continue
        if filters.status and b.status != BookingStatus(filters.status):
            continue
        if filters.student_id and b.student_id != filters.student_id:
            continue
        result.append(b)
    return result


# ── Views ─────────────────────────────────────────────────────────────────────

def build_week_view(
    bookings: Sequence[Booking],
    anchor: date,
    tz: tzinfo = timezone.utc,
    week_starts_on: int = 0,
) -> dict:
    days = week_dates(anchor, week_starts_on)
    columns = []

    for day in days:
        columns.append({
            "date": day,
            "day_name": get_day_name(day),
            "cells": _slot_cells(bookings, day, tz),
        })

    return {
        "kind": ViewKind.WEEK.value,
        "label": date_range_label(ViewKind.WEEK, anchor, week_starts_on),
        "week_start": days[0],
        "week_end": days[-1],
        "slots": [format_time(t) for t in time_slots()],
        "days": columns,
    }


def build_day_view(
    bookings: Sequence[Booking],
    anchor: date,
    instructors: Iterable[Person] = (),
    instructor_id: Optional[str] = None,
    tz: tzinfo = timezone.utc,
) -> dict:
    instructors = list(instructors)
    if instructor_id:
        shown = [p for p in instructors if p.id == instructor_id] \
            or [Person(id=instructor_id, full_name=instructor_id)]
    else:
        shown = [p for p in instructors if p.is_active]

    columns = []
    for inst in shown:
        own = [b for b in bookings if b.instructor_id == inst.id]
        columns.append({
            "instructor_id": inst.id,
            "instructor_name": inst.full_name,
            "cells": _slot_cells(own, anchor, tz),
        })

    return {
        "kind": ViewKind.DAY.value,
        "label": date_range_label(ViewKind.DAY, anchor),
        "date": anchor,
        "slots": [format_time(t) for t in time_slots()],
        "columns": columns,
    }


def build_list_view(bookings: Sequence[Booking], tz: tzinfo = timezone.utc) -> dict:
    groups: dict[date, list[Booking]] = {}
    for b in bookings:
        groups.setdefault(local_date(b.start_at, tz), []).append(b)

    return {
        "kind": ViewKind.LIST.value,
        "label": date_range_label(ViewKind.LIST, None),
        "groups": [
            {"date": day, "bookings": sorted(groups[day], key=lambda b: b.start_at)}
            for day in sorted(groups)
        ],
    }


def build_calendar_view(
    kind: ViewKind,
    bookings: Iterable[Booking],
    filters: CalendarFilters,
    anchor: date,
    students: Iterable[Person] = (),
    instructors: Iterable[Person] = (),
    tz: tzinfo = timezone.utc,
    week_starts_on: int = 0,
) -> dict:
    """Filter, then project into the requested view."""
    kind = ViewKind(kind)
    instructors = list(instructors)
    visible = sorted(filter_bookings(bookings, filters, students, instructors),
                     key=lambda b: b.start_at)

    if kind is ViewKind.WEEK:
        return build_week_view(visible, anchor, tz, week_starts_on)
    if kind is ViewKind.DAY:
        return build_day_view(visible, anchor, instructors, filters.instructor_id, tz)
    return build_list_view(visible, tz)


# ── Navigation + labels ───────────────────────────────────────────────────────

def shift_anchor(kind: ViewKind, anchor: date, steps: int = 1) -> date:
    """Previous/next page: days for the day view, weeks for the week view."""
    kind = ViewKind(kind)
    if kind is ViewKind.DAY:
        return anchor + timedelta(days=steps)
    if kind is ViewKind.WEEK:
        return anchor + timedelta(weeks=steps)
    return anchor


def date_range_label(kind: ViewKind, anchor: Optional[date], week_starts_on: int = 0) -> str:
    kind = ViewKind(kind)
    if kind is ViewKind.DAY:
        return f"{anchor:%A, %B} {anchor.day}, {anchor.year}"
    if kind is ViewKind.WEEK:
        days = week_dates(anchor, week_starts_on)
        first, last = days[0], days[-1]
        return f"{first:%b} {first.day} - {last:%b} {last.day}, {last.year}"
    return "All Bookings"


# ── Cell builder ──────────────────────────────────────────────────────────────

def _slot_cells(bookings: Sequence[Booking], day: date, tz: tzinfo) -> list[dict]:
    day_start = datetime.combine(day, time(0), tzinfo=tz)
    day_end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=tz)
    todays = [b for b in bookings if overlaps(b.start_at, b.end_at, day_start, day_end)]

    cells = []
    for slot in time_slots():
        start, end = slot_bounds(day, slot, tz)
        cells.append(_make_cell(
            slot, start, end,
            [b for b in todays if overlaps(b.start_at, b.end_at, start, end)],
        ))
    return cells


def _make_cell(slot: time, start: datetime, end: datetime, bookings: list) -> dict:
    return {
        "slot": format_time(slot),
        "start": start,
        "end": end,
        "bookings": bookings,
    }
