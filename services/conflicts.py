"""
Conflict detection: admit or reject a proposed booking window for a slot.

``admit`` only reads live rows. The store calls it inside the reservation
transaction, after the per-slot lock is held, so the decision and the insert
that follows it form one atomic unit.
"""
from collections import namedtuple
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from models import db
from models.booking import Booking, ACTIVE_BOOKING_STATUSES
from models.slot import Slot, SLOT_AVAILABLE, SLOT_TAKEN, SLOT_EXPIRED
from security.tenancy import unscoped
from utils.clock import now
from utils.errors import InvalidRange, SlotConflict, SlotUnavailable, UserHasActiveBooking

INVALID_RANGE = "InvalidRange"
SLOT_UNAVAILABLE = "SlotUnavailable"
SLOT_CONFLICT = "SlotConflict"
USER_HAS_ACTIVE_BOOKING = "UserHasActiveBooking"

_ERRORS = {
    INVALID_RANGE: InvalidRange,
    SLOT_UNAVAILABLE: SlotUnavailable,
    SLOT_CONFLICT: SlotConflict,
    USER_HAS_ACTIVE_BOOKING: UserHasActiveBooking,
}


class Decision(namedtuple("Decision", ["kind", "detail"])):
    __slots__ = ()

    @property
    def admitted(self) -> bool:
        return self.kind is None

    def raise_if_rejected(self):
        if self.kind is not None:
            raise _ERRORS[self.kind](self.detail)


ADMIT = Decision(None, None)


def overlapping(slot_id: int, start_time, end_time):
    """Active bookings on the slot whose [start, end) overlaps the window."""
    return Booking.query.filter(
        Booking.slot_id == slot_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_time < end_time,
        Booking.end_time > start_time,
    )


def has_overlap(slot_id: int, start_time, end_time) -> bool:
    return db.session.query(overlapping(slot_id, start_time, end_time).exists()).scalar()


def live_status(slot: Slot, at=None) -> str:
    at = at or now()
    if slot.available_until is not None and slot.available_until <= at:
        return SLOT_EXPIRED
    in_use = db.session.query(
        Booking.query.filter(
            Booking.slot_id == slot.id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time <= at,
            Booking.end_time > at,
        ).exists()
    ).scalar()
    return SLOT_TAKEN if in_use else SLOT_AVAILABLE


def user_has_active_booking(user_id: str, tenant_code: str, at=None) -> bool:
    at = at or now()
    q = db.session.query(func.count(Booking.id)).filter(
        Booking.requester_id == user_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.end_time > at,
    )
    if current_app.config.get("ONE_ACTIVE_BOOKING_SCOPE", "tenant") == "global":
        with unscoped():
            return (q.scalar() or 0) > 0
    return (q.filter(Booking.tenant_code == tenant_code).scalar() or 0) > 0


def _check_range(start_time, end_time, at):
    if start_time >= end_time:
        return Decision(INVALID_RANGE, "end_time must be after start_time")
    if start_time < at:
        return Decision(INVALID_RANGE, "start_time is in the past")

    cfg = current_app.config
    duration = end_time - start_time
    min_minutes = cfg.get("BOOKING_MIN_MINUTES", 60)
    max_hours = cfg.get("BOOKING_MAX_HOURS", 24)
    max_advance_days = cfg.get("BOOKING_MAX_ADVANCE_DAYS", 30)

    if min_minutes and duration < timedelta(minutes=min_minutes):
        return Decision(INVALID_RANGE, f"Minimum booking duration is {min_minutes} minutes")
    if max_hours and duration > timedelta(hours=max_hours):
        return Decision(INVALID_RANGE, f"Maximum booking duration is {max_hours} hours")
    if max_advance_days and start_time - at > timedelta(days=max_advance_days):
        return Decision(INVALID_RANGE, f"Cannot book more than {max_advance_days} days in advance")
    return None


def admit(slot: Slot, start_time, end_time, requester_id: str, at=None) -> Decision:
    at = at or now()

    rejected = _check_range(start_time, end_time, at)
    if rejected:
        return rejected

    if not slot.is_active or live_status(slot, at) != SLOT_AVAILABLE:
        return Decision(SLOT_UNAVAILABLE, "Slot is not available")
    if slot.available_from is not None and start_time < slot.available_from:
        return Decision(SLOT_UNAVAILABLE, "Requested window starts before the slot is available")
    if slot.available_until is not None and end_time > slot.available_until:
        return Decision(SLOT_UNAVAILABLE, "Requested window ends after the slot is available")

    if has_overlap(slot.id, start_time, end_time):
        return Decision(SLOT_CONFLICT, None)

    if current_app.config.get("ONE_ACTIVE_BOOKING_PER_USER", False):
        if user_has_active_booking(requester_id, slot.tenant_code, at):
            return Decision(USER_HAS_ACTIVE_BOOKING, None)

    return ADMIT
