"""
Slot & Booking Store.

Every operation runs under the tenant scope of its actor (or of the resolved
community for anonymous board reads), so the data-layer tenant policy applies
on top of the explicit ``tenant_code`` filters below. Mutations go through
``atomic()``: one transaction, committed or rolled back as a whole, with
driver errors translated into the ``ParkingError`` taxonomy.
"""
from contextlib import contextmanager
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import exists, func, or_, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from models import db
from models.booking import (
    Booking,
    ACTIVE_BOOKING_STATUSES,
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    NO_OVERLAP_CONSTRAINT,
)
from models.slot import Slot, SLOT_AVAILABLE, SLOT_EXPIRED
from models.user import User, ROLE_RESIDENT
from security import guard
from security.guard import authorize, user_is_admin
from security.session import revoke_all_sessions
from security.tenancy import resolve, tenant_scope, unscoped
from services.conflicts import admit, live_status
from utils.audit import log_event
from utils.clock import now
from utils.errors import (
    InvalidRange,
    NotFound,
    ParkingError,
    SlotConflict,
    SlotUnavailable,
    StoreTimeout,
    StoreUnavailable,
    UserHasActiveBooking,
    ValidationError,
)
from utils.notify import notify
from utils.validation import (
    parse_datetime,
    validate_profile_attrs,
    validate_registration,
    validate_slot_attrs,
)

CONFIRMATION_AUTOMATIC = "automatic"
CONFIRMATION_OWNER_APPROVAL = "owner_approval"
CONFIRMATION_MODES = (CONFIRMATION_AUTOMATIC, CONFIRMATION_OWNER_APPROVAL)

_TIMEOUT_MARKERS = ("locked", "timeout", "timed out", "canceling statement")
_REJECTIONS = (InvalidRange, SlotUnavailable, SlotConflict, UserHasActiveBooking)

CENTS = Decimal("0.01")


# ---------- transaction ----------

@contextmanager
def atomic():
    try:
        yield db.session
        db.session.commit()
    except ParkingError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if NO_OVERLAP_CONSTRAINT in str(exc.orig):
            raise SlotConflict() from exc
        current_app.logger.warning("integrity error: %s", exc.orig)
        raise ValidationError("Request violates a data constraint") from exc
    except OperationalError as exc:
        db.session.rollback()
        text = str(exc.orig).lower()
        if any(marker in text for marker in _TIMEOUT_MARKERS):
            current_app.logger.warning("store timeout: %s", exc.orig)
            raise StoreTimeout() from exc
        current_app.logger.error("store unavailable: %s", exc.orig)
        raise StoreUnavailable() from exc
    except DBAPIError as exc:
        db.session.rollback()
        current_app.logger.error("store error: %s", exc.orig)
        raise StoreUnavailable() from exc
    except Exception:
        db.session.rollback()
        raise


def _lock_slot(slot_id, tenant_code: str) -> Slot:
    """Take the per-slot write lock and return the slot re-read inside the lock."""
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.tenant_code == tenant_code)
        .values(booking_seq=Slot.booking_seq + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Slot not found")

    return (
        Slot.query
        .filter(Slot.id == slot_id, Slot.tenant_code == tenant_code)
        .populate_existing()
        .one()
    )


def refresh_slot_status(slot: Slot, at=None) -> str:
    if slot.is_active:
        status = live_status(slot, at)
        if slot.status != status:
            slot.status = status
    return slot.status


def _slot_or_404(slot_id, tenant_code: str) -> Slot:
    slot = Slot.query.filter(
        Slot.id == slot_id,
        Slot.tenant_code == tenant_code,
        Slot.is_active.is_(True),
    ).first()
    if slot is None:
        raise NotFound("Slot not found")
    return slot


def _booking_or_404(booking_id, tenant_code: str) -> Booking:
    booking = Booking.query.filter(
        Booking.id == booking_id,
        Booking.tenant_code == tenant_code,
    ).first()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def _user_or_404(user_id, tenant_code: str) -> User:
    user = User.query.filter(User.id == user_id, User.tenant_code == tenant_code).first()
    if user is None:
        raise NotFound("User not found")
    return user


def _total_price(price_per_hour, start_time, end_time):
    if price_per_hour is None:
        return None
    hours = Decimal((end_time - start_time).total_seconds()) / Decimal(3600)
    return (price_per_hour * hours).quantize(CENTS, rounding=ROUND_HALF_UP)


def _emails(*user_ids):
    ids = [u for u in user_ids if u]
    if not ids:
        return []
    rows = db.session.query(User.email).filter(User.id.in_(ids), User.email.isnot(None)).all()
    return [r[0] for r in rows]


# ---------- slots ----------

def list_available_slots(tenant_code, filters=None):
    """Bookable slots of one community, live (no cache)."""
    scope = resolve(tenant_code)
    filters = filters or {}
    at = now()

    with tenant_scope(scope):
        in_use = exists().where(
            Booking.slot_id == Slot.id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time <= at,
            Booking.end_time > at,
        )
        q = Slot.query.filter(
            Slot.tenant_code == scope.code,
            Slot.is_active.is_(True),
            or_(Slot.available_until.is_(None), Slot.available_until > at),
            ~in_use,
        )

        if "level" in filters:
            q = q.filter(func.lower(Slot.location_level) == filters["level"].lower())
        if "tower" in filters:
            q = q.filter(func.lower(Slot.location_tower) == filters["tower"].lower())
        if "max_price" in filters:
            q = q.filter(Slot.price_per_hour.isnot(None), Slot.price_per_hour <= filters["max_price"])

        if "start" in filters and "end" in filters:
            start, end = filters["start"], filters["end"]
            clashing = exists().where(
                Booking.slot_id == Slot.id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.start_time < end,
                Booking.end_time > start,
            )
            q = q.filter(
                or_(Slot.available_from.is_(None), Slot.available_from <= start),
                or_(Slot.available_until.is_(None), Slot.available_until >= end),
                ~clashing,
            )

        return q.order_by(
            Slot.available_from.asc().nulls_first(),
            Slot.created_at.asc(),
            Slot.id.asc(),
        ).all()


def get_slot(actor, slot_id) -> Slot:
    scope = resolve(actor.tenant_code)
    with tenant_scope(scope), atomic():
        slot = _slot_or_404(slot_id, scope.code)
        refresh_slot_status(slot)
    return slot


def create_slot(actor, tenant_code, attrs) -> Slot:
    scope = resolve(actor.tenant_code)
    authorize(guard.SLOT_CREATE, actor, resolve(tenant_code).code)
    clean = validate_slot_attrs(attrs)
    at = now()

    with tenant_scope(scope), atomic():
        slot = Slot(
            owner_id=actor.user_id,
            tenant_code=scope.code,
            status=SLOT_AVAILABLE,
            **clean,
        )
        if slot.available_until is not None and slot.available_until <= at:
            slot.status = SLOT_EXPIRED
        db.session.add(slot)

    log_event("SLOT_CREATE", user_id=actor.user_id, tenant_code=scope.code, entity="slot", entity_id=slot.id)
    current_app.logger.info("slot %s created in %s by %s", slot.id, scope.code, actor.user_id)
    return slot


def update_slot(actor, slot_id, attrs) -> Slot:
    scope = resolve(actor.tenant_code)
    at = now()

    with tenant_scope(scope), atomic():
        slot = _lock_slot(slot_id, scope.code)
        if not slot.is_active:
            raise NotFound("Slot not found")
        authorize(guard.SLOT_UPDATE, actor, slot, at=at)

        clean = validate_slot_attrs(attrs, partial=True, current=slot)
        for key, value in clean.items():
            setattr(slot, key, value)
        db.session.flush()
        refresh_slot_status(slot, at)

    log_event(
        "SLOT_UPDATE", user_id=actor.user_id, tenant_code=scope.code,
        entity="slot", entity_id=slot.id, metadata={"fields": sorted(clean)},
    )
    return slot


def delete_slot(actor, slot_id) -> Slot:
    """Soft delete: the slot and its booking history stay."""
    scope = resolve(actor.tenant_code)
    at = now()

    with tenant_scope(scope), atomic():
        slot = _lock_slot(slot_id, scope.code)
        if not slot.is_active:
            raise NotFound("Slot not found")
        authorize(guard.SLOT_DELETE, actor, slot, at=at)
        slot.is_active = False

    log_event("SLOT_DELETE", user_id=actor.user_id, tenant_code=scope.code, entity="slot", entity_id=slot.id)
    return slot


def expire_slots(at=None) -> int:
    """Mark every lapsed slot expired, across all communities."""
    at = at or now()
    with atomic():
        result = db.session.execute(
            update(Slot)
            .where(
                Slot.is_active.is_(True),
                Slot.available_until.isnot(None),
                Slot.available_until <= at,
                Slot.status != SLOT_EXPIRED,
            )
            .values(status=SLOT_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
    current_app.logger.info("expired %d slot(s)", count)
    return count


# ---------- bookings ----------

def request_booking(actor, slot_id, start_time, end_time) -> Booking:
    start_time = parse_datetime(start_time, "start_time")
    end_time = parse_datetime(end_time, "end_time")
    scope = resolve(actor.tenant_code)
    at = now()
    mode = current_app.config["BOOKING_CONFIRMATION_MODE"]

    try:
        with tenant_scope(scope), atomic():
            slot = _lock_slot(slot_id, scope.code)
            if not slot.is_active:
                raise NotFound("Slot not found")
            authorize(guard.BOOKING_CREATE, actor, slot, at=at)

            admit(slot, start_time, end_time, actor.user_id, at=at).raise_if_rejected()

            booking = Booking(
                slot_id=slot.id,
                requester_id=actor.user_id,
                tenant_code=slot.tenant_code,
                start_time=start_time,
                end_time=end_time,
                status=BOOKING_CONFIRMED if mode == CONFIRMATION_AUTOMATIC else BOOKING_PENDING,
                total_price=_total_price(slot.price_per_hour, start_time, end_time),
                confirmed_at=at if mode == CONFIRMATION_AUTOMATIC else None,
                created_at=at,
                updated_at=at,
            )
            db.session.add(booking)
            db.session.flush()
            refresh_slot_status(slot, at)
            owner_id = slot.owner_id
    except _REJECTIONS as exc:
        log_event(
            "BOOKING_REJECT", user_id=actor.user_id, tenant_code=scope.code,
            entity="slot", entity_id=slot_id,
            metadata={
                "kind": type(exc).__name__,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
            },
        )
        current_app.logger.info("booking on slot %s rejected: %s", slot_id, type(exc).__name__)
        raise

    log_event(
        "BOOKING_CREATE", user_id=actor.user_id, tenant_code=scope.code,
        entity="booking", entity_id=booking.id,
        metadata={"slot_id": booking.slot_id, "status": booking.status},
    )
    notify("booking.created", {
        "booking_id": booking.id,
        "slot_id": booking.slot_id,
        "status": booking.status,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "recipients": _emails(owner_id),
    })
    return booking


def confirm_booking(actor, booking_id) -> Booking:
    scope = resolve(actor.tenant_code)
    at = now()
    changed = False

    with tenant_scope(scope), atomic():
        booking = _booking_or_404(booking_id, scope.code)
        _lock_slot(booking.slot_id, scope.code)
        authorize(guard.BOOKING_CONFIRM, actor, booking, at=at)

        if booking.status == BOOKING_CANCELLED:
            raise ValidationError("A cancelled booking cannot be confirmed")
        if booking.status == BOOKING_PENDING:
            booking.status = BOOKING_CONFIRMED
            booking.confirmed_at = at
            changed = True
        requester_id = booking.requester_id

    if changed:
        log_event("BOOKING_CONFIRM", user_id=actor.user_id, tenant_code=scope.code, entity="booking", entity_id=booking.id)
        notify("booking.confirmed", {
            "booking_id": booking.id,
            "slot_id": booking.slot_id,
            "recipients": _emails(requester_id),
        })
    return booking


def cancel_booking(actor, booking_id, reason=None) -> Booking:
    """Cancelling a cancelled booking returns it unchanged."""
    scope = resolve(actor.tenant_code)
    at = now()
    changed = False

    with tenant_scope(scope), atomic():
        booking = _booking_or_404(booking_id, scope.code)
        slot = _lock_slot(booking.slot_id, scope.code)
        authorize(guard.BOOKING_CANCEL, actor, booking, at=at)

        if booking.status != BOOKING_CANCELLED:
            booking.status = BOOKING_CANCELLED
            booking.cancelled_at = at
            booking.cancelled_by = actor.user_id
            booking.cancel_reason = (reason or "").strip()[:120] or None
            db.session.flush()
            refresh_slot_status(slot, at)
            changed = True
        parties = (booking.requester_id, slot.owner_id)

    if changed:
        log_event(
            "BOOKING_CANCEL", user_id=actor.user_id, tenant_code=scope.code,
            entity="booking", entity_id=booking.id, metadata={"reason": booking.cancel_reason},
        )
        notify("booking.cancelled", {
            "booking_id": booking.id,
            "slot_id": booking.slot_id,
            "cancelled_by": actor.user_id,
            "recipients": _emails(*[p for p in parties if p != actor.user_id]),
        })
    return booking


def list_my_bookings(actor, status=None):
    """Bookings the actor requested plus bookings on the actor's slots."""
    scope = resolve(actor.tenant_code)
    with tenant_scope(scope):
        q = (
            Booking.query
            .join(Slot, Booking.slot_id == Slot.id)
            .filter(
                Booking.tenant_code == scope.code,
                or_(Booking.requester_id == actor.user_id, Slot.owner_id == actor.user_id),
            )
        )
        if status:
            q = q.filter(Booking.status == status)
        return q.order_by(Booking.start_time.desc(), Booking.id.desc()).all()


def list_tenant_bookings(actor, status=None):
    scope = resolve(actor.tenant_code)
    authorize(guard.BOOKING_LIST_TENANT, actor, scope.code)
    with tenant_scope(scope):
        q = Booking.query.filter(Booking.tenant_code == scope.code)
        if status:
            q = q.filter(Booking.status == status)
        return q.order_by(Booking.start_time.desc(), Booking.id.desc()).all()


# ---------- users ----------

def register_user(subject_id, tenant_code, attrs) -> User:
    if not subject_id:
        raise ValidationError("subject_id is required")
    scope = resolve(tenant_code)
    clean = validate_registration(attrs)

    with unscoped():
        taken = db.session.query(User.id).filter(User.id == subject_id).first()
    if taken is not None:
        raise ValidationError("Already registered")

    with tenant_scope(scope), atomic():
        user = User(id=subject_id, tenant_code=scope.code, role=ROLE_RESIDENT, **clean)
        db.session.add(user)

    log_event("USER_REGISTER", user_id=user.id, tenant_code=scope.code, entity="user", entity_id=user.id)
    return user


def update_profile(actor, user_id, attrs) -> User:
    scope = resolve(actor.tenant_code)
    with tenant_scope(scope), atomic():
        user = _user_or_404(user_id, scope.code)
        authorize(guard.PROFILE_UPDATE, actor, user)
        clean = validate_profile_attrs(attrs, allow_admin_fields=user_is_admin(actor.user_id, scope.code))
        for key, value in clean.items():
            setattr(user, key, value)

    log_event(
        "PROFILE_UPDATE", user_id=actor.user_id, tenant_code=scope.code,
        entity="user", entity_id=user.id, metadata={"fields": sorted(clean)},
    )
    return user


def set_user_active(actor, user_id, active: bool) -> User:
    scope = resolve(actor.tenant_code)
    with tenant_scope(scope), atomic():
        user = _user_or_404(user_id, scope.code)
        authorize(guard.USER_MANAGE, actor, user)
        if user.id == actor.user_id and not active:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = bool(active)

    if not active:
        revoke_all_sessions(user.id)
    log_event(
        "USER_ACTIVATE" if active else "USER_DEACTIVATE",
        user_id=actor.user_id, tenant_code=scope.code, entity="user", entity_id=user.id,
    )
    return user
