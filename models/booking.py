from sqlalchemy import DDL, event

from models.db import db, TenantScoped
from utils.clock import utcnow

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
ACTIVE_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED)


class Booking(TenantScoped, db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)
    requester_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)

    # half-open [start_time, end_time)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=BOOKING_PENDING)

    # server-side only: slot.price_per_hour * hours
    total_price = db.Column(db.Numeric(10, 2), nullable=True)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    slot = db.relationship("Slot", back_populates="bookings")
    requester = db.relationship("User")

    __table_args__ = (
        db.CheckConstraint("start_time < end_time", name="ck_bookings_range"),
        db.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_bookings_status"),
        db.Index("ix_bookings_slot_window", "slot_id", "status", "start_time", "end_time"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


# Durable backstop against overlapping active bookings: an exclusion
# constraint on PostgreSQL, a pair of triggers raising the same name on SQLite
NO_OVERLAP_CONSTRAINT = "ex_bookings_no_overlap"

SQLITE_NO_OVERLAP_TRIGGER = """
CREATE TRIGGER IF NOT EXISTS {name} BEFORE {event} ON bookings
WHEN NEW.status IN ('pending', 'confirmed')
BEGIN
    SELECT RAISE(ABORT, 'ex_bookings_no_overlap')
    WHERE EXISTS (
        SELECT 1 FROM bookings AS b
        WHERE b.slot_id = NEW.slot_id
          AND b.id IS NOT NEW.id
          AND b.status IN ('pending', 'confirmed')
          AND b.start_time < NEW.end_time
          AND NEW.start_time < b.end_time
    );
END
"""
SQLITE_NO_OVERLAP_TRIGGERS = (
    SQLITE_NO_OVERLAP_TRIGGER.format(name="tr_bookings_no_overlap_insert", event="INSERT"),
    SQLITE_NO_OVERLAP_TRIGGER.format(
        name="tr_bookings_no_overlap_update",
        event="UPDATE OF slot_id, start_time, end_time, status",
    ),
)

event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        "ALTER TABLE bookings ADD CONSTRAINT " + NO_OVERLAP_CONSTRAINT + " "
        "EXCLUDE USING gist (slot_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status IN ('pending', 'confirmed'))"
    ).execute_if(dialect="postgresql"),
)
for _trigger in SQLITE_NO_OVERLAP_TRIGGERS:
    event.listen(Booking.__table__, "after_create", DDL(_trigger).execute_if(dialect="sqlite"))
