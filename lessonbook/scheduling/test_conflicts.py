"""
Overlap rule and conflict lookup. Pure, no DB.

  pytest lessonbook/scheduling/test_conflicts.py
"""
from datetime import datetime, timedelta, timezone

from lessonbook.scheduling.conflicts import (
    ResourceIndex, blocking_statuses, find_conflict, find_conflicts, overlaps,
)
from lessonbook.scheduling.types import Booking, BookingStatus

T0 = datetime(2024, 6, 4, 10, 0, tzinfo=timezone.utc)


def _b(id, start, minutes=60, instructor="I1", student="S1", status=BookingStatus.PENDING):
    return Booking(
        id=id, school_id="school-1", student_id=student, instructor_id=instructor,
        start_at=start, end_at=start + timedelta(minutes=minutes), status=status,
    )


# ── overlaps() ────────────────────────────────────────────────────────────────

def test_touching_intervals_do_not_overlap():
    assert not overlaps(T0, T0 + timedelta(hours=1),
                        T0 + timedelta(hours=1), T0 + timedelta(hours=2))
    assert not overlaps(T0 + timedelta(hours=1), T0 + timedelta(hours=2),
                        T0, T0 + timedelta(hours=1))


def test_one_second_of_overlap_counts():
    assert overlaps(T0, T0 + timedelta(hours=1, seconds=1),
                    T0 + timedelta(hours=1), T0 + timedelta(hours=2))


def test_containment_overlaps():
    assert overlaps(T0, T0 + timedelta(hours=3),
                    T0 + timedelta(hours=1), T0 + timedelta(hours=2))


# ── find_conflict() ───────────────────────────────────────────────────────────

def test_same_instructor_overlap_is_conflict():
    existing = [_b("b1", T0, student="S9")]
    hit = find_conflict(_b(None, T0 + timedelta(minutes=30)), existing)
    assert hit.id == "b1"


def test_same_student_overlap_is_conflict():
    existing = [_b("b1", T0, instructor="I9")]
    assert find_conflict(_b(None, T0), existing).id == "b1"


def test_different_resources_never_conflict():
    existing = [_b("b1", T0, instructor="I2", student="S2")]
    assert find_conflict(_b(None, T0), existing) is None


def test_back_to_back_is_free():
    existing = [_b("b1", T0)]
    assert find_conflict(_b(None, T0 + timedelta(hours=1)), existing) is None


def test_excluded_id_is_skipped():
    existing = [_b("b1", T0)]
    assert find_conflict(_b("b1", T0 + timedelta(minutes=15)), existing, exclude_id="b1") is None


def test_cancelled_and_no_show_release_the_slot():
    existing = [
        _b("b1", T0, status=BookingStatus.CANCELLED),
        _b("b2", T0, status=BookingStatus.NO_SHOW),
    ]
    assert find_conflict(_b(None, T0), existing) is None


def test_block_on_inactive_statuses_counts_everything():
    existing = [_b("b1", T0, status=BookingStatus.CANCELLED)]
    hit = find_conflict(_b(None, T0), existing, ignore_statuses=blocking_statuses(True))
    assert hit.id == "b1"


def test_completed_still_blocks():
    existing = [_b("b1", T0, status=BookingStatus.COMPLETED)]
    assert find_conflict(_b(None, T0), existing).id == "b1"


def test_first_hit_follows_input_order():
    existing = [_b("late", T0 + timedelta(minutes=30)), _b("early", T0)]
    assert find_conflict(_b(None, T0, minutes=120), existing).id == "late"
    assert [b.id for b in find_conflicts(_b(None, T0, minutes=120), existing)] == ["late", "early"]


def test_empty_snapshot():
    assert find_conflict(_b(None, T0), []) is None
    assert find_conflicts(_b(None, T0), []) == []


# ── ResourceIndex ─────────────────────────────────────────────────────────────

def test_index_agrees_with_scan_over_sorted_snapshot():
    snapshot = sorted([
        _b("a", T0, instructor="I1", student="S1"),
        _b("b", T0 + timedelta(minutes=90), instructor="I2", student="S1"),
        _b("c", T0 + timedelta(hours=3), instructor="I1", student="S3"),
        _b("d", T0 + timedelta(minutes=30), instructor="I4", student="S4",
           status=BookingStatus.CANCELLED),
    ], key=lambda b: b.start_at)
    index = ResourceIndex()
    for b in snapshot:
        index.book(b)

    for offset in range(0, 6 * 60, 15):
        for instructor, student in (("I1", "S1"), ("I2", "S9"), ("I4", "S4"), ("I9", "S3")):
            candidate = _b(None, T0 + timedelta(minutes=offset), minutes=45,
                           instructor=instructor, student=student)
            expected = find_conflict(candidate, snapshot)
            got = index.find_conflict(candidate)
            assert (got and got.id) == (expected and expected.id), (offset, instructor, student)


def test_index_sees_only_what_was_booked():
    index = ResourceIndex()
    assert index.find_conflict(_b(None, T0)) is None
    index.book(_b("b1", T0))
    assert index.find_conflict(_b(None, T0 + timedelta(minutes=59))).id == "b1"
    assert index.find_conflict(_b(None, T0 + timedelta(minutes=60))) is None
    assert index.find_conflict(_b("b1", T0), exclude_id="b1") is None
