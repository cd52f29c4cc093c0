import os
import sys
from pathlib import Path

from sqlalchemy.orm import Session

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.thrifter.constants import ROLE_ADMIN, ROLE_DRIVER, ROLE_USER  # noqa: E402
from app.thrifter.models import Base, User  # noqa: E402
from app.thrifter.security import hash_password  # noqa: E402
from scripts._db_utils import create_script_engine, script_session  # noqa: E402

ADMIN_PASSWORD = "AdminPass123!"
DRIVER_PASSWORD = "DriverPass123!"
USER_PASSWORD = "UserPass123!"

# (email, name, phone, location, role, verified, password)
SEED_USERS = [
    ("admin@thrifter.com", "Admin User", "1234567890", "Admin Location", ROLE_ADMIN, True, ADMIN_PASSWORD),
    ("driver1@thrifter.com", "John Driver", "03021010101", "Driver Location", ROLE_DRIVER, True, DRIVER_PASSWORD),
    ("driver2@thrifter.com", "Sarah Driver", "03021099102", "Driver Location", ROLE_DRIVER, True, DRIVER_PASSWORD),
    ("user1@thrifter.com", "Alice User", "03021199103", "User Location", ROLE_USER, True, USER_PASSWORD),
    ("user2@thrifter.com", "Bob User", "03025599104", "User Location", ROLE_USER, True, USER_PASSWORD),
    # left unverified so the OTP flow can be exercised by hand
    ("user3@thrifter.com", "Charlie User", "03020010505", "User Location", ROLE_USER, False, USER_PASSWORD),
]


def seed_users(s: Session) -> list[str]:
    """
    Insert the seed accounts that don't exist yet. Returns the emails created.
    Does NOT overwrite existing users (passwords, roles or flags).
    """
    created: list[str] = []
    for email, name, phone, location, role, verified, password in SEED_USERS:
        exists = s.query(User.id).filter((User.email == email) | (User.phone_number == phone)).first()
        if exists:
            continue
        s.add(
            User(
                email=email,
                password_hash=hash_password(password),
                name=name,
                phone_number=phone,
                location=location,
                role=role,
                is_active=True,
                is_verified=verified,
            )
        )
        created.append(email)
    s.flush()
    return created


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin, driver and user accounts in an idempotent way.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///thrifter.db").strip()

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        created = seed_users(s)

    if created:
        print(f"Seeded users: {', '.join(created)}")
    else:
        print("Seed users already present; nothing to do.")


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///thrifter.db").strip()
    if db_url.startswith("sqlite"):
        # Local convenience: create tables directly instead of requiring alembic first.
        engine = create_script_engine(db_url)
        Base.metadata.create_all(bind=engine)
        engine.dispose()
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()
