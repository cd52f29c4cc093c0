import logging
import time

from dotenv import load_dotenv
from flask import Flask, current_app, g, request

from app.thrifter.admin import bp as admin_bp
from app.thrifter.auth import bp as auth_bp, load_current_user
from app.thrifter.config import load_config
from app.thrifter.db import init_db, teardown_db_session
from app.thrifter.errors import ApiError, register_error_handlers
from app.thrifter.limiter import SlidingWindowLimiter
from app.thrifter.modules.contact.admin import bp as contact_bp
from app.thrifter.modules.users.admin import bp as users_bp
from app.thrifter.routes import bp as routes_bp
from app.thrifter.utils import request_id_from

API_PREFIX = "/api/v1"

_UNCHECKED_PREFIXES = ("/health", "/healthz", f"{API_PREFIX}/health")


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root.setLevel(level)
    app.logger.setLevel(level)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.json.sort_keys = False  # type: ignore[attr-defined]
    _configure_logging(app)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if str(app.config.get("JWT_SECRET") or "") in ("", "change-me"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")
        if not app.config.get("SENDGRID_API_KEY"):
            app.logger.warning("SENDGRID_API_KEY is not set; verification and reset emails will not be delivered.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.extensions["api_limiter"] = SlidingWindowLimiter(
        app.config["RATE_LIMIT_MAX"], app.config["RATE_LIMIT_WINDOW_SECONDS"]
    )
    app.extensions["login_limiter"] = SlidingWindowLimiter(
        app.config["LOGIN_RATE_LIMIT"], app.config["LOGIN_RATE_WINDOW_SECONDS"]
    )

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix=f"{API_PREFIX}/auth")
    app.register_blueprint(users_bp, url_prefix=f"{API_PREFIX}/users")
    app.register_blueprint(contact_bp, url_prefix=f"{API_PREFIX}/contact")
    app.register_blueprint(admin_bp, url_prefix=API_PREFIX)

    @app.before_request
    def _start_request():
        g.request_started = time.perf_counter()
        g.request_id = request_id_from(request.headers.get("X-Request-ID"))

    @app.before_request
    def _api_rate_limit():
        if not request.path.startswith(API_PREFIX) or request.path.startswith(_UNCHECKED_PREFIXES):
            return None
        limiter: SlidingWindowLimiter = current_app.extensions["api_limiter"]
        ip = request.remote_addr or "unknown"
        if limiter.hit(ip):
            raise ApiError(429, "Too many requests, please try again later.", {"Retry-After": str(limiter.retry_after(ip))})
        return None

    def _load_user_wrapper():
        if request.path.startswith(_UNCHECKED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.after_request
    def _access_log(response):
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        started = getattr(g, "request_started", None)
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        app.logger.info(
            "%s %s %s %.1fms request_id=%s",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            rid,
        )
        return response

    register_error_handlers(app)

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
