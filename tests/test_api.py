from models.audit_log import AuditLog
from tests.helpers import at, auth, make_slot, token


def _iso(dt):
    return dt.isoformat() + "Z"


def test_health_and_security_headers(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_communities_and_anonymous_board(app, client):
    make_slot(app)
    make_slot(app, owner="b-resident")

    assert [c["code"] for c in client.get("/communities").get_json()] == ["BGC", "LMR"]

    board = client.get("/communities/lmr/slots")
    assert board.status_code == 200
    assert [s["community"] for s in board.get_json()] == ["LMR"]
    assert board.get_json()[0]["status"] == "available"

    missing = client.get("/communities/XYZ/slots")
    assert missing.status_code == 404
    assert missing.get_json()["code"] == "UNKNOWN_TENANT"


def test_board_filters_are_validated(client):
    resp = client.get("/communities/LMR/slots?start=2026-03-02T09:00:00Z")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_requires_authentication(client):
    assert client.get("/slots").status_code == 401
    assert client.post("/bookings", json={"slot_id": 1}).status_code == 401
    bad = client.get("/bookings/me", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    assert bad.get_json()["code"] == "UNAUTHENTICATED"


def test_expired_session_rejected(app, client, clock):
    headers = auth(app, "u-renter")
    assert client.get("/auth/me", headers=headers).status_code == 200
    clock.advance(hours=9)
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_cookie_session_accepted(app, client):
    client.set_cookie("parkboard_session", token(app, "u-renter"))
    resp = client.get("/auth/me")
    assert resp.status_code == 200
    assert resp.get_json()["context"] == {"user_id": "u-renter", "community": "LMR", "role": "resident"}


def test_register_flow(app, client):
    headers = auth(app, "fresh-subject")

    # verified but not registered yet
    assert client.get("/auth/me", headers=headers).status_code == 401

    resp = client.post("/auth/register", headers=headers, json={
        "community": "lmr", "display_name": "Bea", "unit_number": "3A", "phone": "0917-000-0000",
    })
    assert resp.status_code == 201
    assert resp.get_json()["community"] == "LMR"
    assert resp.get_json()["role"] == "resident"

    me = client.get("/auth/me", headers=headers).get_json()
    assert me["user"]["display_name"] == "Bea"

    again = client.post("/auth/register", headers=headers, json={
        "community": "LMR", "display_name": "Bea", "unit_number": "3A",
    })
    assert again.status_code == 400


def test_register_is_rate_limited(make_app, clock):
    app = make_app(REGISTER_RATE_MAX_REQUESTS=2, REGISTER_RATE_WINDOW_SECONDS=600)
    client = app.test_client()
    headers = auth(app, "fresh-subject")
    incomplete = {"community": "LMR", "display_name": "Bea"}

    assert client.post("/auth/register", headers=headers, json=incomplete).status_code == 400
    assert client.post("/auth/register", headers=headers, json=incomplete).status_code == 400

    limited = client.post("/auth/register", headers=headers, json=incomplete)
    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "600"
    assert limited.get_json()["retry_after_seconds"] == 600

    clock.advance(minutes=10)
    ok = client.post("/auth/register", headers=headers, json=dict(incomplete, unit_number="3A"))
    assert ok.status_code == 201

    with app.app_context():
        assert AuditLog.query.filter_by(action="REGISTER_RATE_LIMIT").count() == 1


def test_register_requires_session(client):
    resp = client.post("/auth/register", json={"community": "LMR", "display_name": "X", "unit_number": "1"})
    assert resp.status_code == 401


def test_logout_revokes_token(app, client):
    headers = auth(app, "u-renter")
    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_slot_crud_over_http(app, client):
    owner = auth(app, "u-owner")
    created = client.post("/slots", headers=owner, json={
        "location_level": "B1",
        "location_tower": "Tower A",
        "price_per_hour": 25,
        "available_from": _iso(at(8)),
        "available_until": _iso(at(20)),
    })
    assert created.status_code == 201
    slot = created.get_json()
    assert slot["owner_id"] == "u-owner"
    assert slot["community"] == "LMR"
    assert slot["price_per_hour"] == "25.00"

    listed = client.get("/slots", headers=auth(app, "u-renter")).get_json()
    assert [s["id"] for s in listed] == [slot["id"]]

    patched = client.patch(f"/slots/{slot['id']}", headers=owner, json={"notes": "compact cars only"})
    assert patched.status_code == 200
    assert patched.get_json()["notes"] == "compact cars only"

    forged = client.patch(f"/slots/{slot['id']}", headers=owner, json={"status": "taken"})
    assert forged.status_code == 400

    stranger = client.patch(f"/slots/{slot['id']}", headers=auth(app, "u-other"), json={"notes": "x"})
    assert stranger.status_code == 403
    assert stranger.get_json()["reason"] == "NotOwner"

    deleted = client.delete(f"/slots/{slot['id']}", headers=owner)
    assert deleted.status_code == 200
    assert client.get(f"/slots/{slot['id']}", headers=owner).status_code == 404


def test_cross_tenant_access_looks_like_not_found(app, client):
    slot_id = make_slot(app)
    foreign_admin = auth(app, "b-admin")

    assert client.get(f"/slots/{slot_id}", headers=foreign_admin).status_code == 404
    resp = client.patch(f"/slots/{slot_id}", headers=foreign_admin, json={"notes": "mine"})
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"
    assert client.delete(f"/slots/{slot_id}", headers=foreign_admin).status_code == 404

    booking = client.post("/bookings", headers=auth(app, "b-resident"), json={
        "slot_id": slot_id, "start_time": _iso(at(9)), "end_time": _iso(at(10)),
    })
    assert booking.status_code == 404


def test_booking_flow_over_http(app, client):
    slot_id = make_slot(app, price_per_hour="40")
    renter, other = auth(app, "u-renter"), auth(app, "u-other")

    first = client.post("/bookings", headers=renter, json={
        "slot_id": slot_id, "start_time": _iso(at(9)), "end_time": _iso(at(10)), "total_price": "0.01",
    })
    assert first.status_code == 201
    body = first.get_json()
    assert body["status"] == "confirmed"
    assert body["total_price"] == "40.00"

    clash = client.post("/bookings", headers=other, json={
        "slot_id": slot_id, "start_time": _iso(at(9, 30)), "end_time": _iso(at(10, 30)),
    })
    assert clash.status_code == 409
    assert clash.get_json()["code"] == "SLOT_CONFLICT"

    empty = client.post("/bookings", headers=other, json={
        "slot_id": slot_id, "start_time": _iso(at(11)), "end_time": _iso(at(11)),
    })
    assert empty.status_code == 400
    assert empty.get_json()["code"] == "INVALID_RANGE"

    own = client.post("/bookings", headers=auth(app, "u-owner"), json={
        "slot_id": slot_id, "start_time": _iso(at(12)), "end_time": _iso(at(13)),
    })
    assert own.status_code == 403
    assert own.get_json()["reason"] == "OwnSlot"

    mine = client.get("/bookings/me", headers=renter).get_json()
    assert [b["id"] for b in mine] == [body["id"]]
    assert client.get("/bookings/me?status=bogus", headers=renter).status_code == 400

    cancelled = client.post(f"/bookings/{body['id']}/cancel", headers=renter, json={"reason": "rain"})
    assert cancelled.status_code == 200
    assert cancelled.get_json()["status"] == "cancelled"
    again = client.post(f"/bookings/{body['id']}/cancel", headers=renter)
    assert again.status_code == 200
    assert again.get_json()["cancelled_at"] == cancelled.get_json()["cancelled_at"]

    with app.app_context():
        actions = [r.action for r in AuditLog.query.all()]
    assert actions.count("BOOKING_CREATE") == 1
    assert actions.count("BOOKING_REJECT") == 2
    assert "AUTH_FORBIDDEN" in actions


def test_owner_approval_over_http(make_app):
    app = make_app(BOOKING_CONFIRMATION_MODE="owner_approval")
    client = app.test_client()
    slot_id = make_slot(app)

    created = client.post("/bookings", headers=auth(app, "u-renter"), json={
        "slot_id": slot_id, "start_time": _iso(at(9)), "end_time": _iso(at(10)),
    }).get_json()
    assert created["status"] == "pending"

    path = f"/bookings/{created['id']}/confirm"
    assert client.post(path, headers=auth(app, "u-renter")).status_code == 403
    confirmed = client.post(path, headers=auth(app, "u-owner"))
    assert confirmed.status_code == 200
    assert confirmed.get_json()["status"] == "confirmed"


def test_profile_updates(app, client):
    renter = auth(app, "u-renter")
    ok = client.patch("/users/u-renter", headers=renter, json={"display_name": "Renee"})
    assert ok.status_code == 200
    assert ok.get_json()["display_name"] == "Renee"

    assert client.patch("/users/u-other", headers=renter, json={"display_name": "x"}).status_code == 403
    assert client.patch("/users/u-renter", headers=renter, json={"role": "administrator"}).status_code == 400
    assert client.patch("/users/b-resident", headers=renter, json={"display_name": "x"}).status_code == 404


def test_admin_endpoints(app, client):
    slot_id = make_slot(app)
    client.post("/bookings", headers=auth(app, "u-renter"), json={
        "slot_id": slot_id, "start_time": _iso(at(9)), "end_time": _iso(at(10)),
    })
    admin = auth(app, "u-admin")

    assert client.get("/admin/bookings", headers=auth(app, "u-renter")).status_code == 403
    rows = client.get("/admin/bookings", headers=admin).get_json()
    assert len(rows) == 1
    assert client.get("/admin/bookings", headers=auth(app, "b-admin")).get_json() == []

    logs = client.get("/admin/audit-logs?action=BOOKING_CREATE", headers=admin).get_json()
    assert [r["action"] for r in logs] == ["BOOKING_CREATE"]
    assert client.get("/admin/audit-logs", headers=auth(app, "b-admin")).get_json() == []


def test_deactivated_user_is_locked_out(app, client):
    other = auth(app, "u-other")
    assert client.get("/auth/me", headers=other).status_code == 200

    resp = client.post("/admin/users/u-other/deactivate", headers=auth(app, "u-admin"))
    assert resp.status_code == 200
    assert resp.get_json()["is_active"] is False
    assert client.get("/auth/me", headers=other).status_code == 401

    # a fresh session does not help either
    assert client.get("/auth/me", headers=auth(app, "u-other")).status_code == 401

    assert client.post("/admin/users/u-other/activate", headers=auth(app, "u-admin")).status_code == 200
    assert client.get("/auth/me", headers=auth(app, "u-other")).status_code == 200

    foreign = client.post("/admin/users/u-other/deactivate", headers=auth(app, "b-admin"))
    assert foreign.status_code == 404