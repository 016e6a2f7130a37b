"""
Utility functions for the calendar time grid.
"""
from datetime import date, datetime, time, timedelta, tzinfo

SLOT_MINUTES = 30
GRID_START = time(7, 0)
SLOT_COUNT = 28                     # 07:00 … 20:30


def time_slots() -> list[time]:
    """[07:00, 07:30, …, 20:30]"""
    first = GRID_START.hour * 60 + GRID_START.minute
    return [
        time((first + i * SLOT_MINUTES) // 60, (first + i * SLOT_MINUTES) % 60)
        for i in range(SLOT_COUNT)
    ]


def format_time(t: time) -> str:
    """time(7, 30) → '07:30'"""
    return t.strftime("%H:%M")


def slot_bounds(day: date, slot: time, tz: tzinfo) -> tuple[datetime, datetime]:
    """Aware [start, end) of one slot cell in the calendar's zone."""
    start = datetime.combine(day, slot, tzinfo=tz)
    return start, start + timedelta(minutes=SLOT_MINUTES)


def local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of an aware datetime as seen in tz."""
    return dt.astimezone(tz).date()


def get_day_name(d: date) -> str:
    """date → 'Mon', 'Tue', etc."""
    return d.strftime("%a")


def week_start(anchor: date, week_starts_on: int = 0) -> date:
    """First day of the week containing anchor (0=Mon … 6=Sun)."""
    offset = (anchor.weekday() - week_starts_on) % 7
    return anchor - timedelta(days=offset)


def week_dates(anchor: date, week_starts_on: int = 0) -> list[date]:
    """All 7 dates of the week containing anchor."""
    first = week_start(anchor, week_starts_on)
    return [first + timedelta(days=i) for i in range(7)]


def is_slot_in_past(day: date, slot: time, now: datetime, tz: tzinfo) -> bool:
    """True when the slot starts before now, so a create form should not open."""
    start, _ = slot_bounds(day, slot, tz)
    return start < now
