from __future__ import annotations

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Error with an HTTP status, raised from services and guards."""

    def __init__(self, status_code: int, message: str, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers or {}

    def __repr__(self) -> str:
        return f"ApiError({self.status_code}, {self.message!r})"


def bad_request(errors: list[str]) -> ApiError:
    return ApiError(400, ", ".join(errors))


def _error_response(status_code: int, message: str, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status_code


def register_error_handlers(app: Flask) -> None:
    from app.thrifter.mailer import MailError

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("ApiError %s: %s (request_id=%s)", e.status_code, e.message, getattr(g, "request_id", None))
        else:
            app.logger.info("ApiError %s: %s %s -> %s", e.status_code, request.method, request.path, e.message)
        body, status = _error_response(e.status_code, e.message)
        body.headers.update(e.headers)
        return body, status

    @app.errorhandler(MailError)
    def _mail_error(e: MailError):  # type: ignore[no-redef]
        app.logger.error("Email delivery failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        return _error_response(502, "Failed to send email")

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return _error_response(404, f"Route {request.path} not found")

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return _error_response(405, f"Method {request.method} not allowed on {request.path}")

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return _error_response(e.code or 500, e.description or e.name)

    @app.errorhandler(Exception)
    def _err_500(e: Exception):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if app.config.get("ENV") == "development":
            return _error_response(500, "Something went wrong", error=str(e))
        return _error_response(500, "Something went wrong")
