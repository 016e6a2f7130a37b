"""
Booking status lifecycle.

    pending ──confirm──▶ confirmed ──complete──▶ completed
       │                     │
       └──────cancel─────────┴──────────────────▶ cancelled

completed, cancelled and no_show are terminal. no_show is only ever written
by external processes (a no-show sweep) and has no edges here.
"""
import logging
from dataclasses import replace
from datetime import datetime

from lessonbook.scheduling.errors import InvalidTransitionError
from lessonbook.scheduling.types import Booking, BookingStatus, StatusAction

logger = logging.getLogger(__name__)

TRANSITIONS = {
    (BookingStatus.PENDING, StatusAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, StatusAction.COMPLETE): BookingStatus.COMPLETED,
    (BookingStatus.PENDING, StatusAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, StatusAction.CANCEL): BookingStatus.CANCELLED,
}

# Reporting reads these to know when a booking was accepted / closed.
STAMPED_FIELDS = {
    StatusAction.CONFIRM: "confirmed_at",
    StatusAction.COMPLETE: "completed_at",
    StatusAction.CANCEL: "cancelled_at",
}


def allowed_actions(status: BookingStatus) -> list[StatusAction]:
    """Actions a UI may offer for a booking in this status."""
    return [action for (source, action) in TRANSITIONS if source == status]


def next_status(status: BookingStatus, action: StatusAction) -> BookingStatus:
    try:
        return TRANSITIONS[(BookingStatus(status), StatusAction(action))]
    except (KeyError, ValueError):
        raise InvalidTransitionError(str(getattr(status, "value", status)),
                                     str(getattr(action, "value", action))) from None


def apply_status(booking: Booking, action: StatusAction, now: datetime) -> Booking:
    """
    Return a copy of booking moved along the edge for action, with the
    matching *_at field stamped. Raises InvalidTransitionError otherwise.
    """
    target = next_status(booking.status, action)
    action = StatusAction(action)
    updated = replace(booking, status=target, **{STAMPED_FIELDS[action]: now})
    logger.info("Booking %s: %s -> %s", booking.id, booking.status.value, target.value)
    return updated
