import time

from flask import Blueprint

from app.thrifter.utils import utcnow

bp = Blueprint("routes", __name__)

_STARTED = time.monotonic()


def _timestamp() -> str:
    return utcnow().isoformat() + "Z"


@bp.get("/")
def index():
    return {"message": "Hello World", "api": "/api/v1", "health": "/health"}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"status": "OK", "uptime": round(time.monotonic() - _STARTED, 3), "timestamp": _timestamp()}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/v1/health")
def api_health():
    return {"status": "OK", "service": "thrifter-api", "timestamp": _timestamp()}
