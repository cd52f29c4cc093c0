"""
ACCOUNT LIFECYCLE
=================

register ──> unverified USER + emailed OTP ──> verify_email_otp ──> tokens
login ─────> ADMIN / DRIVER / verified USER ──> tokens
         └─> unverified USER ──> OTP_REQUIRED (new OTP only after the resend cooldown)
refresh ───> presented refresh token deleted, new pair issued (rotation)
logout ────> presented refresh token deleted
request_password_reset ──> emailed link ──> reset_password ──> all refresh tokens revoked

INVARIANTS:
- At most one active (consumed_at IS NULL) EmailOtp per (user, purpose).
- At most one unused PasswordResetToken per user.
- OTP codes and reset tokens are stored only as HMAC digests.
- Service functions commit their own work; route handlers never commit.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from flask import current_app

from app.thrifter.audit import record_event
from app.thrifter.constants import OTP_EXEMPT_ROLES, OTP_PURPOSE_VERIFY_EMAIL, ROLE_USER, VALID_ROLES
from app.thrifter.errors import ApiError, bad_request
from app.thrifter.models import EmailOtp, PasswordResetToken, RefreshToken, User
from app.thrifter.modules.accounts.emails import send_reset_password_email, send_verify_otp_email
from app.thrifter.security import (
    digests_match,
    generate_otp_code,
    generate_reset_token,
    hash_otp,
    hash_password,
    hash_reset_token,
    validate_password_strength,
    verify_password,
)
from app.thrifter.tokens import generate_token_pair, refresh_token_ttl
from app.thrifter.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
_PHONE_NOISE_RE = re.compile(r"[\s\-()]")
MAX_EMAIL_LENGTH = 320
MAX_TEXT_LENGTH = 255


# ---------- input helpers ----------
def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def normalize_phone(value: Any) -> str:
    return _PHONE_NOISE_RE.sub("", str(value or "").strip())


def _text(value: Any) -> str:
    return str(value or "").strip()


def validate_user_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """
    Validate registration / user-management payloads. Returns list of errors.
    With partial=True only the keys present in the payload are checked.
    """
    errors: list[str] = []

    def wanted(key: str) -> bool:
        return not partial or key in payload

    if wanted("email"):
        email = normalize_email(payload.get("email"))
        if not email:
            errors.append("Email is required")
        elif len(email) > MAX_EMAIL_LENGTH or not EMAIL_RE.match(email):
            errors.append("Invalid email format")

    if wanted("password"):
        password = payload.get("password")
        if password is None or password == "":
            errors.append("Password is required")
        elif not isinstance(password, str):
            errors.append("Password must be a string")
        else:
            errors.extend(validate_password_strength(password))

    if wanted("phoneNumber"):
        phone = normalize_phone(payload.get("phoneNumber"))
        if not phone:
            errors.append("Phone number is required")
        elif not PHONE_RE.match(phone):
            errors.append("Invalid phone number format")

    if wanted("name"):
        name = _text(payload.get("name"))
        if not name:
            errors.append("Name is required")
        elif len(name) < 2:
            errors.append("Name must be at least 2 characters long")
        elif len(name) > MAX_TEXT_LENGTH:
            errors.append(f"Name must be at most {MAX_TEXT_LENGTH} characters long")

    if wanted("location"):
        location = _text(payload.get("location"))
        if not location:
            errors.append("Location is required")
        elif len(location) < 2:
            errors.append("Location must be at least 2 characters long")
        elif len(location) > MAX_TEXT_LENGTH:
            errors.append(f"Location must be at most {MAX_TEXT_LENGTH} characters long")

    if "role" in payload:
        role = payload.get("role")
        if not isinstance(role, str) or role.strip().upper() not in VALID_ROLES:
            errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")

    return errors


def ensure_unique_identity(s: "Session", *, email: str | None, phone: str | None, exclude_user_id: int | None = None) -> None:
    """409 when another user (soft-deleted ones included) holds the email or phone number."""
    if email:
        q = s.query(User.id).filter(User.email == email)
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            raise ApiError(409, "User with this email already exists")
    if phone:
        q = s.query(User.id).filter(User.phone_number == phone)
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            raise ApiError(409, "User with this phone number already exists")


def get_user_by_email(s: "Session", email: str) -> User | None:
    if not email:
        return None
    return s.query(User).filter(User.email == email).one_or_none()


def create_user(s: "Session", payload: dict, *, role: str, verified: bool) -> User:
    """Insert a user from a validated payload (caller validates and checks uniqueness)."""
    user = User(
        email=normalize_email(payload.get("email")),
        password_hash=hash_password(payload.get("password") or ""),
        name=_text(payload.get("name")),
        phone_number=normalize_phone(payload.get("phoneNumber")),
        location=_text(payload.get("location")),
        role=role,
        is_active=True,
        is_verified=verified,
    )
    s.add(user)
    s.flush()
    return user


def _ensure_account_usable(user: User) -> None:
    if user.is_deleted:
        raise ApiError(403, "Your account has been deleted")
    if not user.is_active:
        raise ApiError(403, "Your account has been deactivated")


# ---------- sessions ----------
def issue_session(s: "Session", user: User) -> dict[str, str]:
    """Mint an access/refresh pair and persist the refresh token."""
    tokens = generate_token_pair(user)
    s.add(
        RefreshToken(
            token=tokens["refreshToken"],
            user_id=user.id,
            expires_at=utcnow() + refresh_token_ttl(),
        )
    )
    return tokens


def revoke_refresh_tokens(s: "Session", user_id: int) -> int:
    return s.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete(synchronize_session=False)


# ---------- email OTP ----------
def issue_email_otp(s: "Session", user: User, purpose: str = OTP_PURPOSE_VERIFY_EMAIL) -> str:
    """Invalidate any active code for (user, purpose) and store a fresh one. Returns the raw code."""
    now = utcnow()
    (
        s.query(EmailOtp)
        .filter(EmailOtp.user_id == user.id, EmailOtp.purpose == purpose, EmailOtp.consumed_at.is_(None))
        .update({EmailOtp.consumed_at: now}, synchronize_session=False)
    )
    code = generate_otp_code()
    ttl_minutes = current_app.config["OTP_TTL_MINUTES"]
    s.add(
        EmailOtp(
            user_id=user.id,
            code_hash=hash_otp(code),
            purpose=purpose,
            attempts=0,
            expires_at=now + timedelta(minutes=ttl_minutes),
            created_at=now,
        )
    )
    s.flush()
    return code


def latest_active_otp(s: "Session", user_id: int, purpose: str = OTP_PURPOSE_VERIFY_EMAIL) -> EmailOtp | None:
    return (
        s.query(EmailOtp)
        .filter(EmailOtp.user_id == user_id, EmailOtp.purpose == purpose, EmailOtp.consumed_at.is_(None))
        .order_by(EmailOtp.created_at.desc(), EmailOtp.id.desc())
        .first()
    )


def otp_resend_wait_seconds(s: "Session", user_id: int, purpose: str = OTP_PURPOSE_VERIFY_EMAIL) -> int:
    """Seconds left before another code may be sent (0 = may send now)."""
    latest = latest_active_otp(s, user_id, purpose)
    if not latest:
        return 0
    cooldown = current_app.config["OTP_RESEND_COOLDOWN_SECONDS"]
    elapsed = (utcnow() - latest.created_at).total_seconds()
    remaining = cooldown - elapsed
    return max(0, math.ceil(remaining))


def _otp_required(user: User) -> dict:
    return {"kind": "OTP_REQUIRED", "user": user.to_safe_dict(), "otpRequired": True}


# ---------- operations ----------
def register(s: "Session", payload: dict) -> dict:
    """Public sign-up. Always creates an unverified USER and emails an OTP."""
    errors = validate_user_payload({k: v for k, v in payload.items() if k != "role"})
    if errors:
        raise bad_request(errors)

    email = normalize_email(payload.get("email"))
    phone = normalize_phone(payload.get("phoneNumber"))
    ensure_unique_identity(s, email=email, phone=phone)

    user = create_user(s, payload, role=ROLE_USER, verified=False)
    code = issue_email_otp(s, user)
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id), metadata={"role": user.role})
    s.commit()
    logger.info("New user registered: %s with role %s", user.email, user.role)

    send_verify_otp_email(user.email, user.name, code)
    return _otp_required(user)


def login(s: "Session", payload: dict) -> dict:
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""

    errors: list[str] = []
    if not email:
        errors.append("Email is required")
    if not password:
        errors.append("Password is required")
    elif not isinstance(password, str):
        errors.append("Password must be a string")
    if errors:
        raise bad_request(errors)

    user = get_user_by_email(s, email)
    if not user:
        record_event(s, actor=None, action="auth.login_failed", entity_type="User", entity_id=email, reason="Unknown email")
        s.commit()
        raise ApiError(401, "Invalid email or password")

    _ensure_account_usable(user)

    if not verify_password(password, user.password_hash):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=str(user.id),
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise ApiError(401, "Invalid email or password")

    logger.info("User login attempt: %s", user.email)

    if not user.is_verified and user.role not in OTP_EXEMPT_ROLES:
        code = None
        if otp_resend_wait_seconds(s, user.id) == 0:
            code = issue_email_otp(s, user)
        s.commit()
        if code:
            send_verify_otp_email(user.email, user.name, code)
        return _otp_required(user)

    tokens = issue_session(s, user)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    logger.info("User logged in: %s (role: %s)", user.email, user.role)
    return {"kind": "SUCCESS", "user": user.to_safe_dict(), "tokens": tokens}


def verify_email_otp(s: "Session", payload: dict) -> dict:
    """Check the emailed code; on success the user is verified and signed in."""
    email = normalize_email(payload.get("email"))
    code = _text(payload.get("code"))

    errors: list[str] = []
    if not email:
        errors.append("Email is required")
    if not code:
        errors.append("Code is required")
    if errors:
        raise bad_request(errors)

    user = get_user_by_email(s, email)
    if not user:
        raise ApiError(404, "User not found")
    _ensure_account_usable(user)
    if user.is_verified:
        raise ApiError(400, "Email is already verified")

    otp = latest_active_otp(s, user.id)
    if not otp:
        raise ApiError(400, "OTP not found. Please request a new code.")
    if otp.expires_at < utcnow():
        raise ApiError(400, "OTP expired. Please request a new code.")
    if otp.attempts >= current_app.config["OTP_MAX_ATTEMPTS"]:
        raise ApiError(429, "Too many attempts. Request a new code.")

    if not digests_match(hash_otp(code), otp.code_hash):
        otp.attempts += 1
        s.commit()
        raise ApiError(400, "Invalid OTP.")

    user.is_verified = True
    (
        s.query(EmailOtp)
        .filter(EmailOtp.user_id == user.id, EmailOtp.purpose == OTP_PURPOSE_VERIFY_EMAIL)
        .delete(synchronize_session=False)
    )
    tokens = issue_session(s, user)
    record_event(s, actor=user, action="auth.email_verified", entity_type="User", entity_id=str(user.id))
    s.commit()
    logger.info("User email verified: %s", user.email)
    return {"kind": "SUCCESS", "user": user.to_safe_dict(), "tokens": tokens}


def resend_otp(s: "Session", payload: dict) -> None:
    email = normalize_email(payload.get("email"))
    if not email:
        raise ApiError(400, "Email is required")

    user = get_user_by_email(s, email)
    # Don't reveal whether the account exists.
    if not user or user.is_deleted or not user.is_active:
        return
    if user.is_verified:
        raise ApiError(400, "Email is already verified")

    wait = otp_resend_wait_seconds(s, user.id)
    if wait > 0:
        raise ApiError(429, f"Please wait {wait} seconds before requesting a new code.", {"Retry-After": str(wait)})

    code = issue_email_otp(s, user)
    s.commit()
    send_verify_otp_email(user.email, user.name, code)


def refresh(s: "Session", refresh_token: str | None) -> dict[str, str]:
    """Exchange a refresh token for a new pair; the presented token is spent."""
    if not refresh_token:
        raise ApiError(400, "Refresh token is required")

    record = s.query(RefreshToken).filter(RefreshToken.token == refresh_token).one_or_none()
    if not record:
        raise ApiError(401, "Invalid refresh token")

    if record.expires_at < utcnow():
        s.delete(record)
        s.commit()
        raise ApiError(401, "Refresh token has expired")

    user = record.user
    if not user.is_active or user.is_deleted:
        raise ApiError(403, "User account is not active")

    s.delete(record)
    tokens = issue_session(s, user)
    s.commit()
    return tokens


def logout(s: "Session", refresh_token: str | None) -> None:
    if not refresh_token:
        raise ApiError(400, "Refresh token is required")

    record = s.query(RefreshToken).filter(RefreshToken.token == refresh_token).one_or_none()
    if record:
        actor = record.user
        s.delete(record)
        record_event(s, actor=actor, action="auth.logout", entity_type="User", entity_id=str(actor.id))
    s.commit()
    logger.info("User logged out")


def request_password_reset(s: "Session", payload: dict) -> None:
    email = normalize_email(payload.get("email"))
    if not email:
        raise ApiError(400, "Email is required")

    user = get_user_by_email(s, email)
    # Always answer success; never leak whether the account exists.
    if not user or not user.is_active or user.is_deleted:
        logger.info("Password reset requested for unknown or inactive account")
        return

    now = utcnow()
    (
        s.query(PasswordResetToken)
        .filter(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
        .update({PasswordResetToken.used_at: now}, synchronize_session=False)
    )

    raw_token = generate_reset_token()
    ttl_minutes = current_app.config["RESET_TOKEN_TTL_MINUTES"]
    s.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=hash_reset_token(raw_token),
            expires_at=now + timedelta(minutes=ttl_minutes),
            created_at=now,
        )
    )
    record_event(s, actor=user, action="auth.password_reset_requested", entity_type="User", entity_id=str(user.id))
    s.commit()

    reset_url = f"{current_app.config['FRONTEND_URL']}/reset-password?token={raw_token}"
    send_reset_password_email(user.email, user.name, reset_url)


def reset_password(s: "Session", payload: dict) -> None:
    token = _text(payload.get("token"))
    new_password = payload.get("newPassword") or ""

    if not token:
        raise ApiError(400, "Token is required")
    if not new_password:
        raise ApiError(400, "New password is required")
    if not isinstance(new_password, str):
        raise ApiError(400, "New password must be a string")
    errors = validate_password_strength(new_password)
    if errors:
        raise bad_request(errors)

    record = (
        s.query(PasswordResetToken)
        .filter(PasswordResetToken.token_hash == hash_reset_token(token), PasswordResetToken.used_at.is_(None))
        .order_by(PasswordResetToken.created_at.desc())
        .first()
    )
    if not record:
        raise ApiError(400, "Invalid or already used token")
    if record.expires_at < utcnow():
        raise ApiError(400, "Token expired. Please request again.")

    user = record.user
    if not user.is_active or user.is_deleted:
        raise ApiError(403, "User account is not active")

    user.password_hash = hash_password(new_password)
    record.used_at = utcnow()
    (
        s.query(PasswordResetToken)
        .filter(PasswordResetToken.user_id == user.id, PasswordResetToken.id != record.id)
        .delete(synchronize_session=False)
    )
    revoked = revoke_refresh_tokens(s, user.id)
    record_event(
        s,
        actor=user,
        action="auth.password_reset",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"revoked_refresh_tokens": revoked},
    )
    s.commit()
    logger.info("Password reset completed for user: %s", user.id)


def change_password(s: "Session", user: User, payload: dict) -> None:
    current_password = payload.get("currentPassword") or ""
    new_password = payload.get("newPassword") or ""

    errors: list[str] = []
    if not current_password:
        errors.append("Current password is required")
    elif not isinstance(current_password, str):
        errors.append("Current password must be a string")
    if not new_password:
        errors.append("New password is required")
    elif not isinstance(new_password, str):
        errors.append("New password must be a string")
    else:
        errors.extend(validate_password_strength(new_password))
    if errors:
        raise bad_request(errors)

    if not verify_password(current_password, user.password_hash):
        raise ApiError(401, "Current password is incorrect")

    user.password_hash = hash_password(new_password)
    record_event(s, actor=user, action="auth.password_changed", entity_type="User", entity_id=str(user.id))
    s.commit()
    logger.info("Password changed for user: %s", user.id)
