from models.db import db
from utils.clock import utcnow


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True)  # nullable for anonymous events
    tenant_code = db.Column(db.String(4), nullable=True, index=True)
    action = db.Column(db.String(80), nullable=False)  # e.g. BOOKING_CREATE, BOOKING_REJECT
    entity = db.Column(db.String(80), nullable=True)   # e.g. booking, slot
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)
