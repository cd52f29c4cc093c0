from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from app.thrifter.audit import record_event
from app.thrifter.errors import ApiError
from app.thrifter.modules.contact.models import Contact
from app.thrifter.utils import pagination_meta, parse_date

REQUIRED_FIELDS = ("firstName", "lastName", "email", "phone", "message")
# column sizes of the contacts table
MAX_LENGTHS = {"firstName": 128, "lastName": 128, "email": 320, "phone": 32}


def _clean(payload: dict, key: str) -> str:
    v = payload.get(key)
    return str(v).strip() if v is not None else ""


def create_contact(s: Session, payload: dict) -> Contact:
    values = {k: _clean(payload, k) for k in REQUIRED_FIELDS}
    if not all(values.values()):
        raise ApiError(400, "All fields are required.")
    if "@" not in values["email"]:
        raise ApiError(400, "Please provide a valid email address.")
    too_long = [k for k, size in MAX_LENGTHS.items() if len(values[k]) > size]
    if too_long:
        raise ApiError(400, f"Too long: {', '.join(too_long)}.")

    contact = Contact(
        first_name=values["firstName"],
        last_name=values["lastName"],
        email=values["email"].lower(),
        phone_number=values["phone"],
        message=values["message"],
    )
    s.add(contact)
    s.flush()
    record_event(
        s,
        actor=None,
        action="contact.create",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"email": contact.email},
    )
    s.commit()
    return contact


def _parse_day(raw: str | None, name: str) -> date | None:
    try:
        return parse_date(raw)
    except ValueError:
        raise ApiError(400, f"Invalid {name} format. Use YYYY-MM-DD.")


def list_contacts(
    s: Session,
    *,
    page: int,
    limit: int,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[list[Contact], dict]:
    start = _parse_day(start_date, "startDate")
    end = _parse_day(end_date, "endDate")

    q = s.query(Contact)
    if start:
        q = q.filter(Contact.created_at >= datetime.combine(start, time.min))
    if end:
        # inclusive: everything before midnight of the following day
        q = q.filter(Contact.created_at < datetime.combine(end + timedelta(days=1), time.min))

    total = q.count()
    rows = q.order_by(Contact.created_at.desc(), Contact.id.desc()).offset((page - 1) * limit).limit(limit).all()
    meta = pagination_meta(page, limit, total)
    meta["filters"] = {"startDate": start.isoformat() if start else None, "endDate": end.isoformat() if end else None}
    return rows, meta
