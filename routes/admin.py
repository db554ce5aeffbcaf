from flask import Blueprint, jsonify

from models.user import ROLE_ADMIN
from routes.bookings import status_filter
from security.identity import current_actor
from security.rbac import require_roles
from services import store
from utils.serializers import booking_json, user_json

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.get("/bookings")
@require_roles(ROLE_ADMIN)
def tenant_bookings():
    rows = store.list_tenant_bookings(current_actor(), status_filter())
    return jsonify([booking_json(b) for b in rows]), 200


@admin_bp.post("/users/<user_id>/deactivate")
@require_roles(ROLE_ADMIN)
def deactivate_user(user_id):
    user = store.set_user_active(current_actor(), user_id, False)
    return jsonify(user_json(user)), 200


@admin_bp.post("/users/<user_id>/activate")
@require_roles(ROLE_ADMIN)
def activate_user(user_id):
    user = store.set_user_active(current_actor(), user_id, True)
    return jsonify(user_json(user)), 200
