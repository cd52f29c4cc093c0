from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timedelta, timezone

from app.thrifter.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_duration(value: str | int) -> timedelta:
    """Parse "15m", "1h", "7d", "3600" into a timedelta."""
    if isinstance(value, int):
        return timedelta(seconds=value)
    m = _DURATION_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = m.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit.lower()])


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def parse_bool(s: str | None) -> bool | None:
    if s is None:
        return None
    v = s.strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


def parse_pagination(args) -> tuple[int, int]:
    """Read page/limit query args; bad or out-of-range values fall back to defaults."""
    try:
        page = int(args.get("page") or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit") or DEFAULT_PAGE_SIZE)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    if page < 1:
        page = 1
    if limit < 1:
        limit = DEFAULT_PAGE_SIZE
    return page, min(limit, MAX_PAGE_SIZE)


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = max((total + limit - 1) // limit, 1)
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def request_id_from(header_value: str | None) -> str:
    """Reuse a well-formed incoming X-Request-ID (<= 64 safe chars), otherwise mint one."""
    candidate = (header_value or "").strip()
    if candidate and _REQUEST_ID_RE.match(candidate):
        return candidate
    return uuid.uuid4().hex
