import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    jwt_secret: str
    jwt_issuer: str
    jwt_audience: str
    jwt_access_expiration: str
    jwt_refresh_expiration: str

    otp_ttl_minutes: int
    otp_max_attempts: int
    otp_resend_cooldown_seconds: int
    reset_token_ttl_minutes: int
    frontend_url: str

    sendgrid_api_key: str
    sendgrid_from_email: str
    sendgrid_from_name: str
    sendgrid_reply_to: str

    rate_limit_max: int
    rate_limit_window_seconds: int
    login_rate_limit: int
    login_rate_window_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///thrifter.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_issuer=_getenv("JWT_ISSUER", "thrifter-api"),
        jwt_audience=_getenv("JWT_AUDIENCE", "thrifter-app"),
        jwt_access_expiration=_getenv("JWT_ACCESS_EXPIRATION", "1h"),
        jwt_refresh_expiration=_getenv("JWT_REFRESH_EXPIRATION", "7d"),
        otp_ttl_minutes=_getint("OTP_TTL_MINUTES", 10),
        otp_max_attempts=_getint("OTP_MAX_ATTEMPTS", 5),
        otp_resend_cooldown_seconds=_getint("OTP_RESEND_COOLDOWN_SECONDS", 60),
        reset_token_ttl_minutes=_getint("RESET_TOKEN_TTL_MINUTES", 15),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        sendgrid_api_key=_getenv("SENDGRID_API_KEY", ""),
        sendgrid_from_email=_getenv("SENDGRID_FROM_EMAIL", "noreply@thrifter.com"),
        sendgrid_from_name=_getenv("SENDGRID_FROM_NAME", "Thrifter"),
        sendgrid_reply_to=_getenv("SENDGRID_REPLY_TO", ""),
        rate_limit_max=_getint("RATE_LIMIT_MAX", 100),
        rate_limit_window_seconds=_getint("RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
        login_rate_limit=_getint("LOGIN_RATE_LIMIT", 5),
        login_rate_window_seconds=_getint("LOGIN_RATE_WINDOW_SECONDS", 300),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "JWT_SECRET": s.jwt_secret,
        "JWT_ISSUER": s.jwt_issuer,
        "JWT_AUDIENCE": s.jwt_audience,
        "JWT_ACCESS_EXPIRATION": s.jwt_access_expiration,
        "JWT_REFRESH_EXPIRATION": s.jwt_refresh_expiration,
        "OTP_TTL_MINUTES": s.otp_ttl_minutes,
        "OTP_MAX_ATTEMPTS": s.otp_max_attempts,
        "OTP_RESEND_COOLDOWN_SECONDS": s.otp_resend_cooldown_seconds,
        "RESET_TOKEN_TTL_MINUTES": s.reset_token_ttl_minutes,
        "FRONTEND_URL": s.frontend_url,
        "SENDGRID_API_KEY": s.sendgrid_api_key,
        "SENDGRID_FROM_EMAIL": s.sendgrid_from_email,
        "SENDGRID_FROM_NAME": s.sendgrid_from_name,
        "SENDGRID_REPLY_TO": s.sendgrid_reply_to,
        "RATE_LIMIT_MAX": s.rate_limit_max,
        "RATE_LIMIT_WINDOW_SECONDS": s.rate_limit_window_seconds,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW_SECONDS": s.login_rate_window_seconds,
        # request body limit (1MB)
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
