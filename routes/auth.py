from flask import Blueprint, request, jsonify, current_app, g

from models.user import User
from security.identity import current_actor, login_required, session_required, token_from_request
from security.rate_limit import check_register_rate
from security.session import revoke_session
from services.store import register_user
from utils.audit import log_event
from utils.errors import NotFound, ValidationError
from utils.serializers import user_json

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/register")
@session_required
def register():
    allowed, retry_after = check_register_rate()
    if not allowed:
        log_event("REGISTER_RATE_LIMIT", user_id=g.subject_id, metadata={"retry_after": retry_after})
        resp = jsonify(error="Too many registration attempts. Try again later.", retry_after_seconds=retry_after)
        resp.headers["Retry-After"] = str(retry_after)
        return resp, 429

    data = request.get_json(silent=True) or {}
    code = data.get("community")
    if not code:
        raise ValidationError("community is required", details={"community": "required"})

    attrs = {k: v for k, v in data.items() if k != "community"}
    user = register_user(g.subject_id, code, attrs)
    return jsonify(user_json(user)), 201


@auth_bp.get("/me")
@login_required
def me():
    actor = current_actor()
    user = User.query.filter_by(id=actor.user_id, tenant_code=actor.tenant_code).first()
    if not user:
        raise NotFound("User not found")
    return jsonify(
        user=user_json(user),
        context={"user_id": actor.user_id, "community": actor.tenant_code, "role": actor.role},
    ), 200


@auth_bp.post("/logout")
def logout():
    token = token_from_request()
    if token:
        revoke_session(token)
        log_event("LOGOUT", user_id=getattr(g, "subject_id", None))

    resp = jsonify(message="Logged out")
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "parkboard_session"), path="/")
    return resp, 200
