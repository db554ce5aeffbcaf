from models.db import db
from utils.clock import utcnow


class RateLimit(db.Model):
    __tablename__ = "rate_limits"

    id = db.Column(db.Integer, primary_key=True)
    # "<bucket>:<client ip>", e.g. "register:203.0.113.7"
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
