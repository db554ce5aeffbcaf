import hashlib
import secrets
from collections import namedtuple
from datetime import timedelta

from flask import current_app

from models import db
from models.session import Session
from utils.clock import now

# What the identity provider vouches for: who, when issued, until when
SessionClaims = namedtuple("SessionClaims", ["subject_id", "issued_at", "expiry"])


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_session(subject_id: str) -> str:
    """
    Creates a server-side session and returns the RAW token.
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)
    issued_at = now()

    row = Session(
        subject_id=subject_id,
        token_hash=_hash_token(raw_token),
        created_at=issued_at,
        expires_at=issued_at + timedelta(seconds=lifetime),
    )
    db.session.add(row)
    db.session.commit()
    return raw_token


def verify_session(raw_token: str):
    """Default identity provider: the local ``sessions`` table.

    Returns ``SessionClaims`` or ``None`` for unknown, revoked or expired tokens.
    """
    if not raw_token:
        return None

    sess = (
        Session.query
        .filter_by(token_hash=_hash_token(raw_token), revoked=False)
        .first()
    )
    if not sess:
        return None

    # Absolute expiry
    if sess.expires_at <= now():
        return None

    return SessionClaims(sess.subject_id, sess.created_at, sess.expires_at)


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if not sess:
        return False
    sess.revoked = True
    db.session.commit()
    return True


def revoke_all_sessions(subject_id: str) -> int:
    sessions = Session.query.filter_by(subject_id=subject_id, revoked=False).all()
    for s in sessions:
        s.revoked = True
    db.session.commit()
    return len(sessions)
