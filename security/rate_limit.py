from datetime import timedelta

from flask import request, current_app

from models import db
from models.rate_limit import RateLimit
from utils.clock import now


def _client_ip() -> str:
    return request.headers.get("X-Forwarded-For", request.remote_addr) or "unknown"


def check_and_increment(bucket: str) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed window per client IP, configured by ``<BUCKET>_RATE_WINDOW_SECONDS``
    and ``<BUCKET>_RATE_MAX_REQUESTS``.
    """
    key = f"{bucket}:{_client_ip()}"[:128]
    at = now()

    prefix = bucket.upper()
    window_seconds = current_app.config.get(f"{prefix}_RATE_WINDOW_SECONDS", 900)
    max_requests = current_app.config.get(f"{prefix}_RATE_MAX_REQUESTS", 5)

    row = RateLimit.query.filter_by(key=key).first()
    if not row:
        row = RateLimit(key=key, window_start=at, count=0)
        db.session.add(row)

    window_end = row.window_start + timedelta(seconds=window_seconds)

    if at >= window_end:
        row.window_start = at
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - at).total_seconds())
        return False, max(retry_after, 1)

    return True, 0


def check_register_rate() -> tuple[bool, int]:
    return check_and_increment("register")
