"""
Central constants for the Thrifter API.
"""
from __future__ import annotations

# User roles
ROLE_USER = "USER"
ROLE_DRIVER = "DRIVER"
ROLE_ADMIN = "ADMIN"
VALID_ROLES = (ROLE_USER, ROLE_DRIVER, ROLE_ADMIN)

# Roles that sign in without the email OTP gate
OTP_EXEMPT_ROLES = frozenset({ROLE_ADMIN, ROLE_DRIVER})

# EmailOtp.purpose values
OTP_PURPOSE_VERIFY_EMAIL = "VERIFY_EMAIL"

OTP_LENGTH = 6

# JWT "type" claim
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

# Pagination
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
