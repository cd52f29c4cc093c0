import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.thrifter.models import AuditEvent, User


def _clip(value: str | None, size: int) -> str | None:
    return value[:size] if value else value


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper. The caller owns the commit.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    ev = AuditEvent(
        request_id=_clip(rid, 64),
        actor_user_id=actor.id if actor else None,
        actor_user_email=_clip(actor.email, 320) if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=_clip(entity_id, 128),
        reason=_clip(reason, 512),
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=_clip(request.remote_addr, 64) if in_request else None,
    )
    s.add(ev)
    return ev
