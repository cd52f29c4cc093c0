import pytest

from app.thrifter import create_app
from app.thrifter.db import session_scope
from app.thrifter.models import Base, User
from app.thrifter.security import hash_password


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("JWT_SECRET", "SENDGRID_API_KEY", "RATE_LIMIT_MAX", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(
            User(
                email="admin@example.com",
                password_hash=hash_password("AdminPass123!"),
                name="Admin",
                phone_number="+15550000001",
                location="HQ",
                role="ADMIN",
                is_active=True,
                is_verified=True,
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_root_banner(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json == {"message": "Hello World", "api": "/api/v1", "health": "/health"}


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "OK"
    assert r.json["uptime"] >= 0
    assert r.json["timestamp"].endswith("Z")


def test_healthz_plain_text(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_health(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.json["status"] == "OK"
    assert r.json["service"] == "thrifter-api"


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json == {"success": False, "message": "Route /api/v1/nope not found"}


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"

    r = client.get("/api/v1/health")
    assert len(r.headers["X-Request-ID"]) == 32


def test_admin_login_and_protected_access(client):
    # Anonymous is rejected
    r = client.get("/api/v1/users")
    assert r.status_code == 401
    assert r.json["message"] == "Access token is required"

    r = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "AdminPass123!"})
    assert r.status_code == 200
    assert r.json["data"]["kind"] == "SUCCESS"
    token = r.json["data"]["tokens"]["accessToken"]

    r = client.get("/api/v1/users", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["data"]["pagination"]["total"] == 1


def test_garbage_bearer_token_is_401(client):
    r = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid token"


def test_production_requires_postgres(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


def test_production_rejects_default_secret(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/db")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()
