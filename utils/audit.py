import json

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog


def _request_origin():
    if not has_request_context():
        return None, None
    ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    user_agent = request.headers.get("User-Agent", "")
    return ip, (user_agent[:255] if user_agent else None)


def log_event(action: str, user_id=None, tenant_code=None, entity=None, entity_id=None, metadata=None):
    """Append one audit row. Called after the business transaction commits."""
    ip, user_agent = _request_origin()

    row = AuditLog(
        user_id=user_id,
        tenant_code=tenant_code,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("audit write failed for %s", action)
        raise
