from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, request

from app.thrifter.constants import ROLE_ADMIN
from app.thrifter.errors import ApiError
from app.thrifter.models import User


def current_user() -> User:
    """The authenticated user (only valid inside a @require_auth handler)."""
    u = getattr(g, "current_user", None)
    if not u:
        raise ApiError(401, "Authentication required")
    return u


def check_user_role(user_role: str, allowed_roles: tuple[str, ...] | list[str]) -> bool:
    return user_role in allowed_roles


def check_owner_or_admin(user_id: int, resource_user_id: int | str | None, user_role: str) -> bool:
    if user_role == ROLE_ADMIN:
        return True
    return resource_user_id is not None and str(user_id) == str(resource_user_id)


def authenticate() -> User:
    """
    Resolve the bearer token loaded by load_current_user() into a usable account.
    Raises 401 for missing/invalid tokens and 403 for disabled accounts.
    """
    auth_error: ApiError | None = getattr(g, "auth_error", None)
    if auth_error is not None:
        raise auth_error
    if not getattr(g, "token_claims", None):
        raise ApiError(401, "Access token is required")
    user: User | None = getattr(g, "current_user", None)
    if not user:
        raise ApiError(401, "User not found")
    if user.is_deleted:
        raise ApiError(403, "Your account has been deleted")
    if not user.is_active:
        raise ApiError(403, "Your account has been deactivated")
    return user


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        authenticate()
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Usage:
      @require_role("ADMIN")             -> admins only
      @require_role("DRIVER", "ADMIN")   -> drivers or admins
    """
    allowed = tuple(r.upper() for r in roles)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = authenticate()
            if not check_user_role(user.role, allowed):
                raise ApiError(403, "Access denied")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_owner_or_admin(param: str = "user_id") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Allow the user whose id is in the URL parameter `param`, or any admin."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = authenticate()
            resource_user_id = kwargs.get(param, (request.view_args or {}).get(param))
            if not check_owner_or_admin(user.id, resource_user_id, user.role):
                raise ApiError(403, "Access denied")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_admin = require_role(ROLE_ADMIN)
