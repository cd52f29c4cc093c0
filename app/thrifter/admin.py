from flask import Blueprint, request

from app.thrifter.db import db_session
from app.thrifter.models import AuditEvent
from app.thrifter.rbac import require_admin
from app.thrifter.responses import ok
from app.thrifter.utils import pagination_meta, parse_pagination

bp = Blueprint("admin", __name__)


@bp.get("/audit-events")
@require_admin
def audit_list():
    """
    Audit trail, newest first, with simple filters:
    - action (contains)
    - actor_email (contains)
    """
    s = db_session()
    page, limit = parse_pagination(request.args)
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))

    total = q.count()
    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return ok(
        "Audit events retrieved successfully",
        {"events": [e.to_dict() for e in events], "pagination": pagination_meta(page, limit, total)},
    )
