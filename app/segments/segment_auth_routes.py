import json

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import User
from app.utils.auth_guard import login_required
from app.utils.jwt_utils import create_token
from app.utils.responses import error_response


auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


def _get_request_payload(label: str) -> dict:
    data_json = request.get_json(silent=True)
    data_form = request.form.to_dict() if request.form else {}
    data = data_json if isinstance(data_json, dict) and data_json else data_form
    if isinstance(data.get("location"), str):
        try:
            data["location"] = json.loads(data["location"])
        except ValueError:
            data["location"] = {}
    current_app.logger.info(
        "%s_payload_keys content_type=%s keys=%s",
        label,
        request.content_type,
        sorted(data.keys()) if isinstance(data, dict) else [],
    )
    return data if isinstance(data, dict) else {}


def _session_payload(user: User, message: str) -> dict:
    return {
        "ok": True,
        "message": message,
        "token": create_token(int(user.id)),
        "user": user.to_dict(),
    }


def _create_user(*, username: str, email: str, password: str, phone: str | None, location: dict) -> tuple[User | None, tuple | None]:
    """Create user, return (user, error_response)."""
    if not username or not email or not password:
        return None, error_response("VALIDATION_ERROR", "Username, email and password are required", 400)

    existing = User.query.filter(or_(User.email == email, User.username == username)).first()
    if existing is not None:
        current_app.logger.info("register_conflict route=/api/auth/register")
        return None, error_response("VALIDATION_ERROR", "User with this email or username already exists", 400)

    user = User(
        username=username,
        email=email,
        phone=(phone or "").strip() or None,
        city=(str(location.get("city") or "").strip() or None),
        state=(str(location.get("state") or "").strip() or None),
        country=(str(location.get("country") or "").strip() or None),
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("register_conflict_integrity route=/api/auth/register")
        return None, error_response("VALIDATION_ERROR", "User with this email or username already exists", 400)
    return user, None


@auth_bp.post("/register")
def register():
    data = _get_request_payload("register")
    location = data.get("location") if isinstance(data.get("location"), dict) else {}
    user, err = _create_user(
        username=str(data.get("username") or "").strip(),
        email=str(data.get("email") or "").strip().lower(),
        password=str(data.get("password") or ""),
        phone=data.get("phone"),
        location=location,
    )
    if err is not None:
        return err
    current_app.logger.info("user_registered user_id=%s", user.id)
    return jsonify(_session_payload(user, "User registered successfully")), 201


@auth_bp.post("/login")
def login():
    data = _get_request_payload("login")
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not password or not user.check_password(password):
        current_app.logger.info("login_failed email_present=%s", bool(email))
        return error_response("INVALID_CREDENTIALS", "Invalid email or password", 401)

    return jsonify(_session_payload(user, "Login successful")), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(g.current_user.to_dict()), 200
