"""
Field-level diff between a stored booking and the version a caller wants.

Edits arrive as partial patches (form edit, drag-drop move). merge_patch()
folds a patch onto the stored booking; compute_changes() reports what
actually moved, which is what the validator needs to decide whether the
past-start rule applies.
"""
from dataclasses import fields, replace

from lessonbook.scheduling.types import Booking

# Fields an edit or move may touch. Status goes through the state machine.
EDITABLE_FIELDS = (
    "start_at", "end_at", "instructor_id", "student_id", "vehicle_id",
    "lesson_type", "price", "pickup_location", "notes",
)
TIME_FIELDS = ("start_at", "end_at")

_BOOKING_FIELDS = {f.name for f in fields(Booking)}


def merge_patch(stored: Booking, patch: dict) -> Booking:
    """
    Apply patch onto stored. Keys outside EDITABLE_FIELDS are rejected.
    None means "leave as is", except for fields that are optional on the
    booking itself (vehicle_id, price), which the caller clears explicitly
    by passing None.
    """
    unknown = set(patch) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields not editable: {sorted(unknown)}")

    clearable = {"vehicle_id", "price"}
    values = {
        k: v for k, v in patch.items()
        if k in _BOOKING_FIELDS and (v is not None or k in clearable)
    }
    return replace(stored, **values)


def compute_changes(old: Booking, new: Booking) -> dict:
    """{field: {"old": ..., "new": ...}} for every editable field that differs."""
    changes = {}
    for key in EDITABLE_FIELDS:
        if getattr(old, key) != getattr(new, key):
            changes[key] = {"old": getattr(old, key), "new": getattr(new, key)}
    return changes


def time_window_changed(changes: dict) -> bool:
    return any(k in changes for k in TIME_FIELDS)
