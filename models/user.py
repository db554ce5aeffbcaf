from models.db import db, TenantScoped
from utils.clock import utcnow

ROLE_RESIDENT = "resident"
ROLE_ADMIN = "administrator"
ROLES = (ROLE_RESIDENT, ROLE_ADMIN)


class User(TenantScoped, db.Model):
    __tablename__ = "users"

    # Opaque subject id issued by the identity provider
    id = db.Column(db.String(64), primary_key=True)

    display_name = db.Column(db.String(120), nullable=False)
    # owned by the identity provider, used only for notifications
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    unit_number = db.Column(db.String(20), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_RESIDENT)

    # soft deactivation only, users are never deleted
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    slots = db.relationship("Slot", back_populates="owner")

    __table_args__ = (
        db.CheckConstraint("role IN ('resident', 'administrator')", name="ck_users_role"),
    )
