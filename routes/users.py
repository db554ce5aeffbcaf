from flask import Blueprint, jsonify, request

from security.identity import current_actor, login_required
from services.store import update_profile
from utils.serializers import user_json

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.patch("/<user_id>")
@login_required
def patch_user(user_id):
    data = request.get_json(silent=True) or {}
    user = update_profile(current_actor(), user_id, data)
    return jsonify(user_json(user)), 200
