"""
Identity & session context.

The inbound credential is resolved once per request into an ``AuthContext``
kept on ``flask.g``; routes hand it to the store explicitly as ``actor``.
"""
from collections import namedtuple
from functools import wraps

from flask import current_app, g, request

from models import db
from models.user import User
from security.session import verify_session
from utils.clock import now
from utils.errors import Unauthenticated

# Who is acting, cached on g for the request
AuthContext = namedtuple("AuthContext", ["user_id", "tenant_code", "role"])


def token_from_request():
    header = request.headers.get("Authorization", "")
    if header[:7].lower() == "bearer ":
        return header[7:].strip() or None
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "parkboard_session")
    return request.cookies.get(cookie_name)


def _provider():
    return current_app.config.get("IDENTITY_PROVIDER") or verify_session


def verify_claims(token):
    if not token:
        raise Unauthenticated()
    claims = _provider()(token)
    if claims is None or claims.expiry <= now():
        raise Unauthenticated("Session expired or invalid")
    return claims


def context_for(subject_id: str) -> AuthContext:
    user = db.session.get(User, subject_id)
    if user is None:
        raise Unauthenticated("Registration required")
    if not user.is_active:
        raise Unauthenticated("Account deactivated")
    return AuthContext(user.id, user.tenant_code, user.role)


def resolve_identity(token) -> AuthContext:
    claims = verify_claims(token)
    return context_for(claims.subject_id)


def load_current_identity():
    # Cached per request: resolved here once, never re-fetched by views
    g.auth = None
    g.subject_id = None

    token = token_from_request()
    if not token:
        return
    try:
        claims = verify_claims(token)
    except Unauthenticated:
        return
    g.subject_id = claims.subject_id

    try:
        g.auth = context_for(claims.subject_id)
    except Unauthenticated:
        g.auth = None


def current_actor() -> AuthContext:
    actor = getattr(g, "auth", None)
    if actor is None:
        raise Unauthenticated()
    return actor


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        current_actor()
        return fn(*args, **kwargs)
    return wrapper


def session_required(fn):
    """Verified subject, registered or not (used by registration)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "subject_id", None) is None:
            raise Unauthenticated()
        return fn(*args, **kwargs)
    return wrapper
