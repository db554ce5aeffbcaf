"""
Authorization guard: may ``actor`` perform ``operation`` on ``target``?

Rules are evaluated in order and the first match wins. Every rule is answered
from stored relationships through the side lookups below, which select only
key columns. None of them goes back through ``authorize`` for the entity it is
protecting, so a rule can never depend on its own outcome.
"""
from sqlalchemy import func

from models import db
from models.booking import Booking, ACTIVE_BOOKING_STATUSES
from models.slot import Slot
from models.user import User, ROLE_ADMIN
from utils.clock import now
from utils.errors import (
    Forbidden,
    Unauthenticated,
    ACTIVE_BOOKINGS_EXIST,
    CROSS_TENANT,
    NOT_OWNER,
    NOT_PARTY,
    NOT_SELF,
    OWN_SLOT,
)

SLOT_CREATE = "slot:create"
SLOT_UPDATE = "slot:update"
SLOT_DELETE = "slot:delete"
BOOKING_CREATE = "booking:create"
BOOKING_CANCEL = "booking:cancel"
BOOKING_CONFIRM = "booking:confirm"
BOOKING_LIST_TENANT = "booking:list_tenant"
PROFILE_UPDATE = "profile:update"
USER_MANAGE = "user:manage"


# ---------- side lookups ----------

def user_is_admin(user_id: str, tenant_code: str) -> bool:
    role = (
        db.session.query(User.role)
        .filter(User.id == user_id, User.tenant_code == tenant_code, User.is_active.is_(True))
        .scalar()
    )
    return role == ROLE_ADMIN


def user_owns_slot(user_id: str, slot_id: int) -> bool:
    owner_id = db.session.query(Slot.owner_id).filter(Slot.id == slot_id).scalar()
    return owner_id is not None and owner_id == user_id


def slot_active_booking_count(slot_id: int, at=None) -> int:
    at = at or now()
    return (
        db.session.query(func.count(Booking.id))
        .filter(
            Booking.slot_id == slot_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.end_time > at,
        )
        .scalar()
    ) or 0


def booking_parties(booking_id: int):
    """(requester_id, slot_owner_id) for a booking, or (None, None)."""
    row = (
        db.session.query(Booking.requester_id, Slot.owner_id)
        .join(Slot, Booking.slot_id == Slot.id)
        .filter(Booking.id == booking_id)
        .first()
    )
    if row is None:
        return None, None
    return row[0], row[1]


def _target_tenant(target):
    if isinstance(target, str):
        return target
    return getattr(target, "tenant_code", None)


# ---------- rules ----------

def authorize(operation: str, actor, target=None, at=None):
    if actor is None:
        raise Unauthenticated()

    # 1. nothing outside the actor's own tenant, administrators included
    if _target_tenant(target) != actor.tenant_code:
        raise Forbidden(reason=CROSS_TENANT)

    is_admin = user_is_admin(actor.user_id, actor.tenant_code)

    # 2. owner (or administrator), and never under active bookings
    if operation in (SLOT_UPDATE, SLOT_DELETE):
        if not is_admin and not user_owns_slot(actor.user_id, target.id):
            raise Forbidden(reason=NOT_OWNER)
        if slot_active_booking_count(target.id, at) > 0:
            raise Forbidden("Slot has active bookings", reason=ACTIVE_BOOKINGS_EXIST)
        return

    # 3. anyone in the tenant except the owner
    if operation == BOOKING_CREATE:
        if user_owns_slot(actor.user_id, target.id):
            raise Forbidden("You cannot book your own slot", reason=OWN_SLOT)
        return

    # 4. administrators: everything else in their own tenant
    if is_admin:
        return

    # 5. any resident may list a slot they will own
    if operation == SLOT_CREATE:
        return

    # 6. requester or slot owner
    if operation == BOOKING_CANCEL:
        requester_id, owner_id = booking_parties(target.id)
        if actor.user_id in (requester_id, owner_id):
            return
        raise Forbidden(reason=NOT_PARTY)

    # 7. owner approves pending requests
    if operation == BOOKING_CONFIRM:
        _, owner_id = booking_parties(target.id)
        if owner_id is not None and actor.user_id == owner_id:
            return
        raise Forbidden(reason=NOT_OWNER)

    # 8. own profile only
    if operation == PROFILE_UPDATE:
        if getattr(target, "id", None) == actor.user_id:
            return
        raise Forbidden(reason=NOT_SELF)

    raise Forbidden()
