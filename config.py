import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as parkboard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "parkboard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Every store round-trip is bounded by this (busy timeout / statement_timeout)
    STORE_TIMEOUT_SECONDS = int(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

    # Session cookie name for the identity token (Bearer header is also accepted)
    AUTH_COOKIE_NAME = "parkboard_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Booking confirmation policy: "automatic" or "owner_approval".
    # No default on purpose, create_app() refuses to start without it.
    BOOKING_CONFIRMATION_MODE = os.getenv("BOOKING_CONFIRMATION_MODE")

    # One active (pending/confirmed) booking per user, scoped "tenant" or "global"
    ONE_ACTIVE_BOOKING_PER_USER = _env_bool("ONE_ACTIVE_BOOKING_PER_USER")
    ONE_ACTIVE_BOOKING_SCOPE = os.getenv("ONE_ACTIVE_BOOKING_SCOPE", "tenant")

    # Booking rules
    BOOKING_MIN_MINUTES = int(os.getenv("BOOKING_MIN_MINUTES", "60"))
    BOOKING_MAX_HOURS = int(os.getenv("BOOKING_MAX_HOURS", "24"))
    BOOKING_MAX_ADVANCE_DAYS = int(os.getenv("BOOKING_MAX_ADVANCE_DAYS", "30"))

    # Clock override (callable returning naive UTC datetime), used by tests
    CLOCK = None

    # Identity provider override: callable(token) -> SessionClaims or None
    IDENTITY_PROVIDER = None

    # Notifications (best effort)
    NOTIFY_ENABLED = _env_bool("NOTIFY_ENABLED", "true")
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Account creation: fixed window per client IP
    REGISTER_RATE_WINDOW_SECONDS = int(os.getenv("REGISTER_RATE_WINDOW_SECONDS", "900"))
    REGISTER_RATE_MAX_REQUESTS = int(os.getenv("REGISTER_RATE_MAX_REQUESTS", "5"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
