from flask import Blueprint, jsonify, request

from models.audit_log import AuditLog
from models.user import ROLE_ADMIN
from security.identity import current_actor
from security.rbac import require_roles

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


@audit_bp.get("/audit-logs")
@require_roles(ROLE_ADMIN)
def list_audit_logs():
    actor = current_actor()

    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    action = request.args.get("action")
    user_id = request.args.get("user_id")

    # audit rows are not tenant-scoped entities, filter explicitly
    q = AuditLog.query.filter(AuditLog.tenant_code == actor.tenant_code)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()

    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat() if r.timestamp else None,
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": r.metadata_json,
        }
        for r in rows
    ]), 200
