from __future__ import annotations


from flask import Blueprint, current_app, g, request

from app.thrifter.db import db_session
from app.thrifter.errors import ApiError
from app.thrifter.models import User
from app.thrifter.modules.accounts import service as accounts
from app.thrifter.rbac import current_user, require_auth
from app.thrifter.responses import json_body, ok
from app.thrifter.tokens import verify_token
from app.thrifter.utils import request_id_from

bp = Blueprint("auth", __name__)


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer token (if any).
    Also assigns a simple per-request request_id (for audit/log correlation).
    Token problems are parked on g.auth_error and raised only by guarded routes.
    """
    if not getattr(g, "request_id", None):
        g.request_id = request_id_from(request.headers.get("X-Request-ID"))
    g.current_user = None
    g.token_claims = None
    g.auth_error = None

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return

    token = header[len("Bearer "):].strip()
    try:
        claims = verify_token(token)
    except ApiError as e:
        g.auth_error = e
        return

    try:
        user_id = int(claims.get("user_id"))
    except (TypeError, ValueError):
        g.auth_error = ApiError(401, "Invalid token")
        return

    g.token_claims = claims
    g.current_user = db_session().get(User, user_id)


def _login_limiter():
    return current_app.extensions["login_limiter"]


@bp.post("/register")
def register():
    result = accounts.register(db_session(), json_body())
    return ok("User registered successfully", result, status=201)


@bp.post("/login")
def login():
    ip = request.remote_addr or "unknown"
    limiter = _login_limiter()
    if limiter.is_limited(ip):
        raise ApiError(429, "Too many login attempts. Please wait a few minutes.", {"Retry-After": str(limiter.retry_after(ip))})
    limiter.record(ip)

    result = accounts.login(db_session(), json_body())
    limiter.reset(ip)

    if result["kind"] == "OTP_REQUIRED":
        return ok("Email verification required. Check your inbox for the code.", result)

    user = result["user"]
    return ok(
        "Login successful",
        {
            "kind": result["kind"],
            "user": user,
            "tokens": result["tokens"],
            "tokenPayload": {"email": user["email"], "name": user["name"], "role": user["role"]},
        },
    )


@bp.post("/refresh")
def refresh():
    tokens = accounts.refresh(db_session(), json_body().get("refreshToken"))
    return ok("Token refreshed successfully", tokens)


@bp.post("/logout")
def logout():
    accounts.logout(db_session(), json_body().get("refreshToken"))
    return ok("Logout successful")


@bp.get("/me")
@require_auth
def me():
    user = current_user()
    claims = g.token_claims or {}
    return ok(
        "User profile retrieved successfully",
        {
            "user": user.to_dict(),
            "decodedToken": {"email": claims.get("email"), "name": claims.get("name"), "role": claims.get("role")},
        },
    )


@bp.post("/verify-otp")
def verify_otp():
    result = accounts.verify_email_otp(db_session(), json_body())
    return ok("Email verified successfully", result)


@bp.post("/resend-otp")
def resend_otp():
    accounts.resend_otp(db_session(), json_body())
    return ok("If the account exists and is unverified, a new code has been sent.")


@bp.post("/forgot-password")
def forgot_password():
    accounts.request_password_reset(db_session(), json_body())
    return ok("If an account exists for that email, a reset link has been sent.")


@bp.post("/reset-password")
def reset_password():
    accounts.reset_password(db_session(), json_body())
    return ok("Password reset successfully. Please log in again.")


@bp.post("/change-password")
@require_auth
def change_password():
    accounts.change_password(db_session(), current_user(), json_body())
    return ok("Password changed successfully")
