from datetime import datetime, timezone

from flask import current_app, has_app_context


def utcnow() -> datetime:
    # Naive UTC, matching how every DateTime column is stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now() -> datetime:
    """Request-time clock. Tests inject one through the CLOCK config key."""
    if has_app_context():
        clock = current_app.config.get("CLOCK")
        if clock is not None:
            return clock()
    return utcnow()
