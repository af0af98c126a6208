from __future__ import annotations

from flask import jsonify

from app.utils.observability import get_request_id


ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "INVALID_ATTRIBUTES": 400,
    "LISTING_DELETED": 400,
    "AUTH_REQUIRED": 401,
    "INVALID_CREDENTIALS": 401,
    "INVALID_TOKEN": 403,
    "FORBIDDEN": 403,
    "LISTING_NOT_FOUND": 404,
    "RECEIVER_NOT_FOUND": 404,
    "CATEGORY_NOT_FOUND": 404,
    "NOT_FOUND": 404,
}


def error_response(error: str, message: str, status: int | None = None, **extra):
    status = int(status or ERROR_STATUS.get(error, 400))
    payload = {
        "ok": False,
        "error": error,
        "message": message,
        "status": status,
        "trace_id": get_request_id(),
    }
    payload.update(extra)
    return jsonify(payload), status


def service_error(result: dict):
    """Turn a failed service result ({ok: False, error, message}) into a response."""
    extra = {k: v for k, v in result.items() if k not in ("ok", "error", "message", "attributes")}
    error = str(result.get("error") or "VALIDATION_ERROR")
    message = str(result.get("message") or "; ".join(result.get("errors") or []) or error)
    return error_response(error, message, **extra)
