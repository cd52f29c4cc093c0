from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from app.thrifter import create_app
from app.thrifter.db import session_scope
from app.thrifter.models import Base, PasswordResetToken, RefreshToken, User
from app.thrifter.security import hash_password
from app.thrifter.utils import utcnow


@pytest.fixture()
def reset_links(monkeypatch):
    sent: list[dict] = []

    def _capture(to_email, to_name, reset_url):
        sent.append({"to": to_email, "url": reset_url})
        return True

    monkeypatch.setattr("app.thrifter.modules.accounts.service.send_reset_password_email", _capture)
    return sent


@pytest.fixture()
def app(tmp_path, monkeypatch, reset_links):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("FRONTEND_URL", "https://app.example.com/")
    for k in ("JWT_SECRET", "SENDGRID_API_KEY", "RATE_LIMIT_MAX", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(
            User(
                email="bob@example.com",
                password_hash=hash_password("OldPass123!"),
                name="Bob",
                phone_number="+15550000010",
                location="Town",
                role="USER",
                is_active=True,
                is_verified=True,
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _token_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["token"][0]


def test_forgot_password_is_generic_for_unknown_email(client, reset_links):
    r = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    assert reset_links == []

    r = client.post("/api/v1/auth/forgot-password", json={})
    assert r.status_code == 400


def test_reset_flow_updates_password_and_revokes_sessions(client, app, reset_links):
    r = client.post("/api/v1/auth/login", json={"email": "bob@example.com", "password": "OldPass123!"})
    old_refresh = r.json["data"]["tokens"]["refreshToken"]

    r = client.post("/api/v1/auth/forgot-password", json={"email": "BOB@example.com"})
    assert r.status_code == 200
    assert len(reset_links) == 1
    assert reset_links[0]["url"].startswith("https://app.example.com/reset-password?token=")
    token = _token_from(reset_links[0]["url"])

    with session_scope(app) as s:
        row = s.query(PasswordResetToken).one()
        assert row.token_hash != token

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": "NewPass123!"})
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.query(RefreshToken).count() == 0
        assert s.query(PasswordResetToken).one().used_at is not None

    r = client.post("/api/v1/auth/refresh", json={"refreshToken": old_refresh})
    assert r.status_code == 401

    r = client.post("/api/v1/auth/login", json={"email": "bob@example.com", "password": "NewPass123!"})
    assert r.json["data"]["kind"] == "SUCCESS"

    # single use
    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": "Another123!"})
    assert r.status_code == 400
    assert r.json["message"] == "Invalid or already used token"


def test_new_request_invalidates_previous_token(client, reset_links):
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    first, second = (_token_from(x["url"]) for x in reset_links)

    r = client.post("/api/v1/auth/reset-password", json={"token": first, "newPassword": "NewPass123!"})
    assert r.status_code == 400

    r = client.post("/api/v1/auth/reset-password", json={"token": second, "newPassword": "NewPass123!"})
    assert r.status_code == 200


def test_expired_reset_token(client, app, reset_links):
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    token = _token_from(reset_links[0]["url"])
    with session_scope(app) as s:
        s.query(PasswordResetToken).update({PasswordResetToken.expires_at: utcnow() - timedelta(minutes=1)})

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": "NewPass123!"})
    assert r.status_code == 400
    assert r.json["message"] == "Token expired. Please request again."


def test_reset_password_validates_strength(client, reset_links):
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    token = _token_from(reset_links[0]["url"])

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": "alllowercase1!"})
    assert r.status_code == 400
    assert r.json["message"] == "Password must contain at least one uppercase letter"


def test_reset_for_deactivated_user_is_forbidden(client, app, reset_links):
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    token = _token_from(reset_links[0]["url"])
    with session_scope(app) as s:
        s.query(User).filter(User.email == "bob@example.com").update({User.is_active: False})

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": "NewPass123!"})
    assert r.status_code == 403
    assert r.json["message"] == "User account is not active"


def test_reset_password_rejects_non_string_password(client, reset_links):
    client.post("/api/v1/auth/forgot-password", json={"email": "bob@example.com"})
    token = _token_from(reset_links[0]["url"])

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "newPassword": 12345678})
    assert r.status_code == 400
    assert r.json["message"] == "New password must be a string"
