from __future__ import annotations

import hashlib
import hmac
import re
import secrets

from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from app.thrifter.constants import OTP_LENGTH

MIN_PASSWORD_LENGTH = 8
_SPECIAL_RE = re.compile(r"[^A-Za-z0-9]")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not isinstance(password, str) or not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


def validate_password_strength(password: str) -> list[str]:
    """Return the list of unmet password rules (empty when the password is acceptable)."""
    if not isinstance(password, str):
        return ["Password must be a string"]
    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    """Numeric code without a leading zero, uniformly drawn from [10^(n-1), 10^n - 1]."""
    low = 10 ** (length - 1)
    high = 10**length - 1
    return str(low + secrets.randbelow(high - low + 1))


def generate_reset_token() -> str:
    """Raw token sent in the reset email; only its HMAC is stored."""
    return secrets.token_hex(32)


def _hmac_hex(value: str) -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def hash_otp(code: str) -> str:
    return _hmac_hex(code.strip())


def hash_reset_token(token: str) -> str:
    return _hmac_hex(token.strip())


def digests_match(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
