from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.thrifter.audit import record_event
from app.thrifter.constants import ROLE_ADMIN, ROLE_USER, VALID_ROLES
from app.thrifter.errors import ApiError, bad_request
from app.thrifter.models import User
from app.thrifter.modules.accounts.emails import send_credentials_email
from app.thrifter.modules.accounts.service import (
    create_user,
    ensure_unique_identity,
    normalize_email,
    normalize_phone,
    revoke_refresh_tokens,
    validate_user_payload,
)
from app.thrifter.utils import pagination_meta, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

# Fields only an administrator may change through update_user().
ADMIN_ONLY_FIELDS = ("role", "isActive", "isVerified")
PROFILE_FIELDS = ("name", "location", "phoneNumber", "email")


def list_users(
    s: "Session",
    *,
    page: int,
    limit: int,
    search: str = "",
    role: str = "",
    is_active: bool | None = None,
    is_verified: bool | None = None,
    include_deleted: bool = False,
) -> tuple[list[User], dict]:
    q = s.query(User)
    if not include_deleted:
        q = q.filter(User.deleted_at.is_(None))
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(or_(func.lower(User.name).like(like), func.lower(User.email).like(like)))
    if role:
        q = q.filter(User.role == role.upper())
    if is_active is not None:
        q = q.filter(User.is_active == is_active)
    if is_verified is not None:
        q = q.filter(User.is_verified == is_verified)

    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return users, pagination_meta(page, limit, total)


def get_user(s: "Session", user_id: int, *, include_deleted: bool = False) -> User:
    user = s.get(User, user_id)
    if not user or (user.is_deleted and not include_deleted):
        raise ApiError(404, "User not found")
    return user


def admin_create_user(s: "Session", payload: dict, actor: User) -> User:
    """Admin-created accounts are verified up front and receive their credentials by email."""
    if "role" in payload and payload["role"] is None:
        payload = {k: v for k, v in payload.items() if k != "role"}
    errors = validate_user_payload(payload)
    if errors:
        raise bad_request(errors)

    role = (payload.get("role") or ROLE_USER).strip().upper()
    email = normalize_email(payload.get("email"))
    phone = normalize_phone(payload.get("phoneNumber"))
    ensure_unique_identity(s, email=email, phone=phone)

    user = create_user(s, payload, role=role, verified=True)
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    s.commit()

    send_credentials_email(user.email, user.name, payload.get("password") or "", user.role)
    return user


def update_user(s: "Session", user: User, payload: dict, actor: User) -> User:
    is_admin = actor.role == ROLE_ADMIN
    touched_admin_fields = [f for f in ADMIN_ONLY_FIELDS if f in payload]
    if touched_admin_fields and not is_admin:
        raise ApiError(403, "Only administrators can change role, isActive or isVerified")

    if "password" in payload:
        raise ApiError(400, "Use the change-password or reset-password endpoints to change passwords")

    errors = validate_user_payload({k: payload[k] for k in PROFILE_FIELDS + ("role",) if k in payload}, partial=True)
    for flag in ("isActive", "isVerified"):
        if flag in payload and not isinstance(payload[flag], bool):
            errors.append(f"{flag} must be a boolean")
    if errors:
        raise bad_request(errors)

    changes: dict[str, dict] = {}

    def _set(attr: str, new):
        old = getattr(user, attr)
        if new != old:
            changes[attr] = {"old": old, "new": new}
            setattr(user, attr, new)

    new_email = normalize_email(payload["email"]) if "email" in payload else None
    new_phone = normalize_phone(payload["phoneNumber"]) if "phoneNumber" in payload else None
    ensure_unique_identity(
        s,
        email=new_email if new_email and new_email != user.email else None,
        phone=new_phone if new_phone and new_phone != user.phone_number else None,
        exclude_user_id=user.id,
    )

    if "name" in payload:
        _set("name", str(payload["name"]).strip())
    if "location" in payload:
        _set("location", str(payload["location"]).strip())
    if new_phone is not None:
        _set("phone_number", new_phone)
    if new_email is not None and new_email != user.email:
        _set("email", new_email)
        # A self-service address change has to be proven again.
        if not is_admin:
            _set("is_verified", False)

    if is_admin:
        if "role" in payload:
            new_role = str(payload["role"]).strip().upper()
            if user.id == actor.id and new_role != ROLE_ADMIN:
                raise ApiError(400, "Administrators cannot remove their own admin role")
            _set("role", new_role)
        if "isVerified" in payload:
            _set("is_verified", payload["isVerified"])
        if "isActive" in payload:
            if user.id == actor.id and payload["isActive"] is False:
                raise ApiError(400, "Administrators cannot deactivate themselves")
            _set("is_active", payload["isActive"])
            if payload["isActive"] is False:
                revoke_refresh_tokens(s, user.id)

    if changes:
        user.updated_at = utcnow()
        record_event(
            s,
            actor=actor,
            action="user.update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    s.commit()
    return user


def soft_delete_user(s: "Session", user: User, actor: User, reason: str | None = None) -> None:
    if user.id == actor.id:
        raise ApiError(400, "You cannot delete your own account")
    if user.is_deleted:
        raise ApiError(404, "User not found")

    now = utcnow()
    user.deleted_at = now
    user.is_active = False
    user.updated_at = now
    revoked = revoke_refresh_tokens(s, user.id)
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        reason=reason,
        metadata={"email": user.email, "revoked_refresh_tokens": revoked},
    )
    s.commit()


def restore_user(s: "Session", user: User, actor: User) -> User:
    if not user.is_deleted:
        raise ApiError(400, "User is not deleted")
    user.deleted_at = None
    user.is_active = True
    user.updated_at = utcnow()
    record_event(s, actor=actor, action="user.restore", entity_type="User", entity_id=str(user.id))
    s.commit()
    return user


def user_stats(s: "Session") -> dict:
    live = s.query(User).filter(User.deleted_at.is_(None))
    by_role = {role: 0 for role in VALID_ROLES}
    for role, count in live.with_entities(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = count

    total = live.count()
    active = live.filter(User.is_active.is_(True)).count()
    verified = live.filter(User.is_verified.is_(True)).count()
    deleted = s.query(User).filter(User.deleted_at.isnot(None)).count()
    return {
        "total": total,
        "byRole": by_role,
        "active": active,
        "inactive": total - active,
        "verified": verified,
        "unverified": total - verified,
        "deleted": deleted,
    }
