import pytest

from app.thrifter import create_app
from app.thrifter.db import session_scope
from app.thrifter.models import AuditEvent, Base, RefreshToken, User
from app.thrifter.security import hash_password


@pytest.fixture()
def credentials_outbox(monkeypatch):
    sent: list[dict] = []

    def _capture(to_email, name, password, role):
        sent.append({"to": to_email, "password": password, "role": role})
        return True

    monkeypatch.setattr("app.thrifter.modules.users.service.send_credentials_email", _capture)
    return sent


@pytest.fixture()
def app(tmp_path, monkeypatch, credentials_outbox):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("JWT_SECRET", "SENDGRID_API_KEY", "RATE_LIMIT_MAX", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    def _user(email, role, phone, name, verified=True):
        return User(
            email=email,
            password_hash=hash_password("Passw0rd!"),
            name=name,
            phone_number=phone,
            location="City",
            role=role,
            is_active=True,
            is_verified=verified,
        )

    with session_scope(app) as s:
        s.add_all(
            [
                _user("admin@example.com", "ADMIN", "+15550000100", "Ada Admin"),
                _user("driver@example.com", "DRIVER", "+15550000101", "Dan Driver"),
                _user("carol@example.com", "USER", "+15550000102", "Carol"),
                _user("dave@example.com", "USER", "+15550000103", "Dave", verified=False),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _auth(client, email, password="Passw0rd!"):
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.json["data"]["kind"] == "SUCCESS", r.json
    return {"Authorization": f"Bearer {r.json['data']['tokens']['accessToken']}"}


def _user_id(app, email):
    with session_scope(app) as s:
        return s.query(User.id).filter(User.email == email).scalar()


def test_list_requires_admin(client):
    r = client.get("/api/v1/users", headers=_auth(client, "carol@example.com"))
    assert r.status_code == 403
    assert r.json["message"] == "Access denied"


def test_list_filters_and_pagination(client):
    admin = _auth(client, "admin@example.com")

    r = client.get("/api/v1/users?limit=2", headers=admin)
    assert r.status_code == 200
    data = r.json["data"]
    assert len(data["users"]) == 2
    assert data["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 4,
        "totalPages": 2,
        "hasNextPage": True,
        "hasPrevPage": False,
    }
    assert data["requestedBy"] == {"email": "admin@example.com", "role": "ADMIN"}

    r = client.get("/api/v1/users?role=user", headers=admin)
    assert {u["email"] for u in r.json["data"]["users"]} == {"carol@example.com", "dave@example.com"}

    r = client.get("/api/v1/users?is_verified=false", headers=admin)
    assert [u["email"] for u in r.json["data"]["users"]] == ["dave@example.com"]

    r = client.get("/api/v1/users?q=DRIV", headers=admin)
    assert [u["email"] for u in r.json["data"]["users"]] == ["driver@example.com"]

    r = client.get("/api/v1/users?limit=1000", headers=admin)
    assert r.json["data"]["pagination"]["limit"] == 100


def test_admin_creates_verified_user_and_emails_credentials(client, app, credentials_outbox):
    admin = _auth(client, "admin@example.com")
    payload = {
        "email": "New.Driver@example.com",
        "password": "Driver123!",
        "phoneNumber": "+15550000199",
        "name": "Nina",
        "location": "Depot",
        "role": "DRIVER",
    }
    r = client.post("/api/v1/users", json=payload, headers=admin)
    assert r.status_code == 201
    user = r.json["data"]["user"]
    assert user["email"] == "new.driver@example.com"
    assert user["role"] == "DRIVER"
    assert user["isVerified"] is True
    assert credentials_outbox == [{"to": "new.driver@example.com", "password": "Driver123!", "role": "DRIVER"}]

    r = client.post("/api/v1/users", json=payload, headers=admin)
    assert r.status_code == 409

    r = client.post("/api/v1/users", json=dict(payload, email="x@example.com", phoneNumber="+15550000198", role="BOSS"), headers=admin)
    assert r.status_code == 400
    assert "Invalid role" in r.json["message"]

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.create").count() == 1


def test_owner_or_admin_can_read_profile(client, app):
    carol_id = _user_id(app, "carol@example.com")
    dave_id = _user_id(app, "dave@example.com")
    carol = _auth(client, "carol@example.com")

    r = client.get(f"/api/v1/users/{carol_id}", headers=carol)
    assert r.status_code == 200
    assert r.json["data"]["user"]["email"] == "carol@example.com"

    r = client.get(f"/api/v1/users/{dave_id}", headers=carol)
    assert r.status_code == 403

    r = client.get("/api/v1/users/9999", headers=_auth(client, "admin@example.com"))
    assert r.status_code == 404


def test_self_update_rules(client, app):
    carol_id = _user_id(app, "carol@example.com")
    carol = _auth(client, "carol@example.com")

    r = client.put(f"/api/v1/users/{carol_id}", json={"role": "ADMIN"}, headers=carol)
    assert r.status_code == 403

    r = client.put(f"/api/v1/users/{carol_id}", json={"phoneNumber": "+15550000101"}, headers=carol)
    assert r.status_code == 409

    r = client.put(f"/api/v1/users/{carol_id}", json={"name": "C"}, headers=carol)
    assert r.status_code == 400

    r = client.put(
        f"/api/v1/users/{carol_id}",
        json={"name": "Caroline", "email": "caroline@example.com"},
        headers=carol,
    )
    assert r.status_code == 200
    user = r.json["data"]["user"]
    assert user["name"] == "Caroline"
    assert user["email"] == "caroline@example.com"
    # a changed address has to be verified again
    assert user["isVerified"] is False


def test_admin_deactivation_revokes_sessions(client, app):
    driver_id = _user_id(app, "driver@example.com")
    _auth(client, "driver@example.com")
    admin = _auth(client, "admin@example.com")

    r = client.put(f"/api/v1/users/{driver_id}", json={"isActive": False}, headers=admin)
    assert r.status_code == 200
    assert r.json["data"]["user"]["isActive"] is False

    with session_scope(app) as s:
        assert s.query(RefreshToken).filter(RefreshToken.user_id == driver_id).count() == 0
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.update").one()
        assert ev.actor_user_email == "admin@example.com"
        assert "is_active" in ev.metadata_json

    r = client.put(f"/api/v1/users/{driver_id}", json={"isActive": "no"}, headers=admin)
    assert r.status_code == 400


def test_soft_delete_and_restore(client, app):
    admin_id = _user_id(app, "admin@example.com")
    carol_id = _user_id(app, "carol@example.com")
    carol_headers = _auth(client, "carol@example.com")
    admin = _auth(client, "admin@example.com")

    r = client.delete(f"/api/v1/users/{admin_id}", headers=admin)
    assert r.status_code == 400

    r = client.delete(f"/api/v1/users/{carol_id}", headers=carol_headers)
    assert r.status_code == 403

    r = client.delete(f"/api/v1/users/{carol_id}", headers=admin)
    assert r.status_code == 200

    with session_scope(app) as s:
        carol = s.get(User, carol_id)
        assert carol.deleted_at is not None
        assert carol.is_active is False
        assert s.query(RefreshToken).filter(RefreshToken.user_id == carol_id).count() == 0

    # hidden from default listing, visible with include_deleted
    r = client.get("/api/v1/users", headers=admin)
    assert "carol@example.com" not in {u["email"] for u in r.json["data"]["users"]}
    r = client.get("/api/v1/users?include_deleted=true", headers=admin)
    assert "carol@example.com" in {u["email"] for u in r.json["data"]["users"]}

    # the old access token no longer works
    r = client.get("/api/v1/auth/me", headers=carol_headers)
    assert r.status_code == 403

    r = client.post(f"/api/v1/users/{carol_id}/restore", headers=admin)
    assert r.status_code == 200
    assert r.json["data"]["user"]["deletedAt"] is None

    r = client.post(f"/api/v1/users/{carol_id}/restore", headers=admin)
    assert r.status_code == 400


def test_stats(client):
    admin = _auth(client, "admin@example.com")
    r = client.get("/api/v1/users/stats", headers=admin)
    assert r.status_code == 200
    stats = r.json["data"]["stats"]
    assert stats["total"] == 4
    assert stats["byRole"] == {"USER": 2, "DRIVER": 1, "ADMIN": 1}
    assert stats["verified"] == 3
    assert stats["unverified"] == 1
    assert stats["deleted"] == 0


def test_audit_events_listing(client):
    admin = _auth(client, "admin@example.com")
    client.post("/api/v1/auth/login", json={"email": "carol@example.com", "password": "bad"})

    r = client.get("/api/v1/audit-events?action=auth.login", headers=admin)
    assert r.status_code == 200
    actions = {e["action"] for e in r.json["data"]["events"]}
    assert actions == {"auth.login", "auth.login_failed"}

    r = client.get("/api/v1/audit-events", headers=_auth(client, "carol@example.com"))
    assert r.status_code == 403


def test_null_role_is_rejected_on_update(client, app):
    carol_id = _user_id(app, "carol@example.com")
    admin = _auth(client, "admin@example.com")

    r = client.put(f"/api/v1/users/{carol_id}", json={"role": None}, headers=admin)
    assert r.status_code == 400
    assert "Invalid role" in r.json["message"]

    r = client.put(f"/api/v1/users/{carol_id}", json={"role": 3}, headers=admin)
    assert r.status_code == 400

    with session_scope(app) as s:
        assert s.get(User, carol_id).role == "USER"


def test_null_role_on_create_defaults_to_user(client):
    admin = _auth(client, "admin@example.com")
    r = client.post(
        "/api/v1/users",
        json={
            "email": "erin@example.com",
            "password": "Erin1234!",
            "phoneNumber": "+15550000150",
            "name": "Erin",
            "location": "City",
            "role": None,
        },
        headers=admin,
    )
    assert r.status_code == 201
    assert r.json["data"]["user"]["role"] == "USER"


def test_non_string_password_on_create_is_rejected(client):
    admin = _auth(client, "admin@example.com")
    r = client.post(
        "/api/v1/users",
        json={
            "email": "frank@example.com",
            "password": 12345678,
            "phoneNumber": "+15550000151",
            "name": "Frank",
            "location": "City",
        },
        headers=admin,
    )
    assert r.status_code == 400
    assert r.json["message"] == "Password must be a string"
