from flask import Blueprint, jsonify, g, request, current_app

from app.extensions import db
from app.services.listing_query_service import favorite_listings, seller_listings
from app.utils.auth_guard import login_required
from app.utils.responses import error_response


users_bp = Blueprint("users_bp", __name__, url_prefix="/api/users")

PROFILE_FIELDS = ("phone", "avatar", "location")


@users_bp.get("/my-listings")
@login_required
def my_listings():
    return jsonify(seller_listings(int(g.current_user.id))), 200


@users_bp.get("/my-favorites")
@login_required
def my_favorites():
    return jsonify(favorite_listings(int(g.current_user.id))), 200


@users_bp.put("/profile")
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not any(k in data for k in PROFILE_FIELDS):
        return error_response("VALIDATION_ERROR", "Nothing to update", 400)

    user = g.current_user
    if "phone" in data:
        user.phone = str(data.get("phone") or "").strip() or None
    if "avatar" in data:
        user.avatar = str(data.get("avatar") or "").strip() or None
    if "location" in data:
        location = data.get("location")
        if not isinstance(location, dict):
            return error_response("VALIDATION_ERROR", "location must be an object", 400)
        for key in ("city", "state", "country"):
            if key in location:
                setattr(user, key, str(location.get(key) or "").strip() or None)
    db.session.commit()
    current_app.logger.info("profile_updated user_id=%s", user.id)
    return jsonify({"ok": True, "message": "Profile updated", "user": user.to_dict()}), 200
