from flask import Blueprint, request

from app.thrifter.constants import ROLE_ADMIN
from app.thrifter.db import db_session
from app.thrifter.modules.users import service
from app.thrifter.rbac import current_user, require_admin, require_owner_or_admin
from app.thrifter.responses import json_body, ok
from app.thrifter.utils import parse_bool, parse_pagination

bp = Blueprint("users", __name__)


@bp.get("")
@require_admin
def users_list():
    page, limit = parse_pagination(request.args)
    users, pagination = service.list_users(
        db_session(),
        page=page,
        limit=limit,
        search=(request.args.get("q") or "").strip(),
        role=(request.args.get("role") or "").strip(),
        is_active=parse_bool(request.args.get("is_active")),
        is_verified=parse_bool(request.args.get("is_verified")),
        include_deleted=bool(parse_bool(request.args.get("include_deleted"))),
    )
    actor = current_user()
    return ok(
        "Users retrieved successfully",
        {
            "users": [u.to_dict() for u in users],
            "pagination": pagination,
            "requestedBy": {"email": actor.email, "role": actor.role},
        },
    )


@bp.post("")
@require_admin
def users_create():
    user = service.admin_create_user(db_session(), json_body(), current_user())
    return ok("User created successfully. Login credentials were emailed to the user.", {"user": user.to_dict()}, status=201)


@bp.get("/stats")
@require_admin
def users_stats():
    return ok("User statistics retrieved successfully", {"stats": service.user_stats(db_session())})


@bp.get("/<int:user_id>")
@require_owner_or_admin("user_id")
def users_detail(user_id: int):
    is_admin = current_user().role == ROLE_ADMIN
    user = service.get_user(db_session(), user_id, include_deleted=is_admin)
    return ok("User retrieved successfully", {"user": user.to_dict()})


@bp.put("/<int:user_id>")
@require_owner_or_admin("user_id")
def users_update(user_id: int):
    s = db_session()
    user = service.get_user(s, user_id)
    user = service.update_user(s, user, json_body(), current_user())
    return ok("User updated successfully", {"user": user.to_dict()})


@bp.delete("/<int:user_id>")
@require_admin
def users_delete(user_id: int):
    s = db_session()
    user = service.get_user(s, user_id)
    reason = json_body().get("reason")
    service.soft_delete_user(s, user, current_user(), reason=str(reason) if reason else None)
    return ok("User deleted successfully")


@bp.post("/<int:user_id>/restore")
@require_admin
def users_restore(user_id: int):
    s = db_session()
    user = service.get_user(s, user_id, include_deleted=True)
    user = service.restore_user(s, user, current_user())
    return ok("User restored successfully", {"user": user.to_dict()})
