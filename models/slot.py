from models.db import db, TenantScoped
from utils.clock import utcnow

SLOT_AVAILABLE = "available"
SLOT_TAKEN = "taken"
SLOT_EXPIRED = "expired"


class Slot(TenantScoped, db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    owner_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)

    # Location descriptor (level / tower / landmark)
    location_level = db.Column(db.String(20), nullable=False)
    location_tower = db.Column(db.String(60), nullable=False)
    location_landmark = db.Column(db.String(120), nullable=True)

    # NULL means "contact to negotiate"
    price_per_hour = db.Column(db.Numeric(10, 2), nullable=True)

    # Derived by the store, never written from client input
    status = db.Column(db.String(20), nullable=False, default=SLOT_AVAILABLE, index=True)

    available_from = db.Column(db.DateTime, nullable=True)
    available_until = db.Column(db.DateTime, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # soft delete
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # bumped inside every reservation transaction; the UPDATE is the per-slot lock
    booking_seq = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = db.relationship("User", back_populates="slots")
    bookings = db.relationship("Booking", back_populates="slot")

    __table_args__ = (
        db.CheckConstraint("status IN ('available', 'taken', 'expired')", name="ck_slots_status"),
        db.CheckConstraint(
            "available_from IS NULL OR available_until IS NULL OR available_until > available_from",
            name="ck_slots_window",
        ),
        db.CheckConstraint("price_per_hour IS NULL OR price_per_hour >= 0", name="ck_slots_price"),
        db.Index("ix_slots_location", "location_level", "location_tower"),
    )
