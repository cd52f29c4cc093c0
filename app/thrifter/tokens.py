from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import jwt
from flask import current_app

from app.thrifter.constants import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH
from app.thrifter.errors import ApiError
from app.thrifter.utils import parse_duration, utcnow

if TYPE_CHECKING:
    from datetime import timedelta

    from app.thrifter.models import User

ALGORITHM = "HS256"


def _secret() -> str:
    return current_app.config["JWT_SECRET"]


def access_token_ttl() -> "timedelta":
    return parse_duration(current_app.config.get("JWT_ACCESS_EXPIRATION") or "1h")


def refresh_token_ttl() -> "timedelta":
    return parse_duration(current_app.config.get("JWT_REFRESH_EXPIRATION") or "7d")


def build_payload(user: "User") -> dict[str, Any]:
    """Identity claims carried by both token types."""
    return {
        "sub": str(user.id),
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "location": user.location,
        "phone_number": user.phone_number,
    }


def _sign(payload: dict[str, Any], token_type: str, ttl: "timedelta") -> str:
    now = utcnow()
    claims = dict(payload)
    claims.update(
        {
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "iss": current_app.config["JWT_ISSUER"],
            "aud": current_app.config["JWT_AUDIENCE"],
            # keeps tokens minted in the same second distinct
            "jti": uuid.uuid4().hex,
        }
    )
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def generate_access_token(user: "User") -> str:
    return _sign(build_payload(user), TOKEN_TYPE_ACCESS, access_token_ttl())


def generate_refresh_token(user: "User") -> str:
    return _sign(build_payload(user), TOKEN_TYPE_REFRESH, refresh_token_ttl())


def generate_token_pair(user: "User") -> dict[str, str]:
    return {
        "accessToken": generate_access_token(user),
        "refreshToken": generate_refresh_token(user),
    }


def verify_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> dict[str, Any]:
    """Decode and validate a token; any failure is a 401."""
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            issuer=current_app.config["JWT_ISSUER"],
            audience=current_app.config["JWT_AUDIENCE"],
        )
    except jwt.ExpiredSignatureError:
        raise ApiError(401, "Token has expired")
    except jwt.InvalidTokenError:
        raise ApiError(401, "Invalid token")
    except Exception:
        current_app.logger.exception("Token verification failed")
        raise ApiError(401, "Token verification failed")

    if claims.get("type") != expected_type:
        raise ApiError(401, "Invalid token")
    return claims
