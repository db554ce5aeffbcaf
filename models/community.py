from models.db import db
from utils.clock import utcnow

COMMUNITY_ACTIVE = "active"
COMMUNITY_INACTIVE = "inactive"


class Community(db.Model):
    __tablename__ = "communities"

    # Short immutable code used in URLs, e.g. "LMR"
    code = db.Column(db.String(4), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    display_name = db.Column(db.String(160), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=COMMUNITY_ACTIVE)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("status IN ('active', 'inactive')", name="ck_communities_status"),
    )
