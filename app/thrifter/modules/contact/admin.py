from flask import Blueprint, request

from app.thrifter.db import db_session
from app.thrifter.modules.contact import service
from app.thrifter.rbac import require_admin
from app.thrifter.responses import json_body, ok
from app.thrifter.utils import parse_pagination

bp = Blueprint("contact", __name__)


@bp.post("")
def contact_create():
    contact = service.create_contact(db_session(), json_body())
    return ok("Your message has been received. We'll get back to you soon.", contact.to_dict(), status=201)


@bp.get("")
@require_admin
def contact_list():
    page, limit = parse_pagination(request.args)
    rows, meta = service.list_contacts(
        db_session(),
        page=page,
        limit=limit,
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
    )
    return ok("Contacts retrieved successfully", [c.to_dict() for c in rows], meta=meta)
