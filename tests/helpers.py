from datetime import datetime, timedelta

from models import db
from models.community import Community, COMMUNITY_ACTIVE
from models.user import User, ROLE_ADMIN, ROLE_RESIDENT
from security.identity import AuthContext
from security.session import issue_session
from services import store

# Monday 2 March 2026, 07:00 UTC
T0 = datetime(2026, 3, 2, 7, 0)


def at(hour, minute=0, days=0):
    return T0.replace(hour=hour, minute=minute) + timedelta(days=days)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


USERS = [
    # id, community, role
    ("u-owner", "LMR", ROLE_RESIDENT),
    ("u-renter", "LMR", ROLE_RESIDENT),
    ("u-other", "LMR", ROLE_RESIDENT),
    ("u-admin", "LMR", ROLE_ADMIN),
    ("b-resident", "BGC", ROLE_RESIDENT),
    ("b-admin", "BGC", ROLE_ADMIN),
]


def seed(app):
    with app.app_context():
        db.create_all()
        db.session.add(Community(code="LMR", name="Lumiere", display_name="Lumiere Residences", status=COMMUNITY_ACTIVE))
        db.session.add(Community(code="BGC", name="Bonifacio", display_name="BGC Towers", status=COMMUNITY_ACTIVE))
        db.session.flush()
        for user_id, code, role in USERS:
            db.session.add(User(
                id=user_id,
                tenant_code=code,
                role=role,
                display_name=user_id.title(),
                unit_number="12B",
                email=f"{user_id}@example.com",
            ))
        db.session.commit()


def actor(app, user_id):
    with app.app_context():
        user = db.session.get(User, user_id)
        return AuthContext(user.id, user.tenant_code, user.role)


def token(app, subject_id):
    with app.app_context():
        return issue_session(subject_id)


def auth(app, subject_id):
    return {"Authorization": f"Bearer {token(app, subject_id)}"}


def make_slot(app, owner="u-owner", **attrs):
    values = {
        "location_level": "B2",
        "location_tower": "Tower 1",
        "available_from": at(8),
        "available_until": at(18),
    }
    values.update(attrs)
    who = actor(app, owner)
    with app.app_context():
        return store.create_slot(who, who.tenant_code, values).id


def book(app, user_id, slot_id, start, end):
    who = actor(app, user_id)
    with app.app_context():
        booking = store.request_booking(who, slot_id, start, end)
        return booking.id, booking.status
