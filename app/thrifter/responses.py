from flask import jsonify, request


def ok(message: str, data=None, status: int = 200, **extra):
    """Success envelope: {"success": true, "message": ..., "data": ...}."""
    body: dict = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}
