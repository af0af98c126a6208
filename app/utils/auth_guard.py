from __future__ import annotations

from functools import wraps

from flask import current_app, g, request

from app.extensions import db
from app.models import User
from app.utils.jwt_utils import decode_token, get_bearer_token, user_id_from_claims
from app.utils.responses import error_response


def resolve_current_user() -> tuple[User | None, str | None]:
    """
    Returns (user, failure). failure is None on success, "missing" when no
    bearer token was sent, and "invalid" for a bad token or a deleted user.
    """
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None, "missing"
    uid = user_id_from_claims(decode_token(token))
    if uid is None:
        return None, "invalid"
    user = db.session.get(User, uid)
    if user is None:
        current_app.logger.info("auth_user_missing user_id=%s", uid)
        return None, "invalid"
    return user, None


def login_required(fn):
    """
    Flask decorator: 401 without a bearer token, 403 for an invalid token.
    The authenticated row is exposed as `g.current_user`.
    """

    @wraps(fn)
    def wrapped(*args, **kwargs):
        user, failure = resolve_current_user()
        if failure == "missing":
            return error_response("AUTH_REQUIRED", "Access token required", 401)
        if user is None:
            return error_response("INVALID_TOKEN", "Invalid token", 403)
        g.current_user = user
        return fn(*args, **kwargs)

    return wrapped
