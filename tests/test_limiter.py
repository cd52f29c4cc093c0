from datetime import datetime, timedelta

import pytest

from app.thrifter import create_app
from app.thrifter.limiter import SlidingWindowLimiter
from app.thrifter.models import Base


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now


@pytest.fixture()
def clock(monkeypatch):
    c = _Clock()
    monkeypatch.setattr("app.thrifter.limiter.utcnow", c)
    return c


def test_hit_blocks_after_limit_until_window_passes(clock):
    lim = SlidingWindowLimiter(limit=3, window_seconds=60)
    assert [lim.hit("ip") for _ in range(4)] == [False, False, False, True]
    assert lim.retry_after("ip") == 61

    clock.now += timedelta(seconds=61)
    assert lim.hit("ip") is False


def test_keys_are_independent(clock):
    lim = SlidingWindowLimiter(limit=1, window_seconds=60)
    assert lim.hit("a") is False
    assert lim.hit("a") is True
    assert lim.hit("b") is False


def test_record_and_reset(clock):
    lim = SlidingWindowLimiter(limit=2, window_seconds=300)
    lim.record("ip")
    lim.record("ip")
    assert lim.is_limited("ip")
    lim.reset("ip")
    assert not lim.is_limited("ip")


def test_zero_limit_disables(clock):
    lim = SlidingWindowLimiter(limit=0, window_seconds=60)
    assert not lim.enabled
    assert all(lim.hit("ip") is False for _ in range(10))


def test_api_rate_limit_applies_to_api_routes_only(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("JWT_SECRET", "SENDGRID_API_KEY"):
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("RATE_LIMIT_MAX", "2")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "60")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    client = app.test_client()

    assert client.post("/api/v1/contact", json={}).status_code == 400
    assert client.post("/api/v1/contact", json={}).status_code == 400
    r = client.post("/api/v1/contact", json={})
    assert r.status_code == 429
    assert r.json == {"success": False, "message": "Too many requests, please try again later."}
    assert 0 < int(r.headers["Retry-After"]) <= 61
    assert "X-Request-ID" in r.headers

    # probes are never limited
    assert client.get("/api/v1/health").status_code == 200
    assert client.get("/health").status_code == 200


def test_idle_keys_are_dropped(clock):
    lim = SlidingWindowLimiter(limit=5, window_seconds=60)
    for i in range(1000):
        lim.is_limited(f"10.0.{i // 256}.{i % 256}")
    assert len(lim) == 0

    for i in range(50):
        lim.hit(f"ip-{i}")
    assert len(lim) == 50

    clock.now += timedelta(seconds=61)
    for i in range(50):
        assert lim.retry_after(f"ip-{i}") == 0
    assert len(lim) == 0
