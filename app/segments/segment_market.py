from __future__ import annotations

import json

from flask import Blueprint, jsonify, request, current_app, g

from app.services.category_schema import list_category_tree, schema_for_category
from app.services.listing_query_service import (
    featured_listings,
    parse_listing_query,
    query_listings,
)
from app.services.listing_service import (
    create_listing,
    get_listing_detail,
    soft_delete_listing,
    toggle_favorite,
    update_listing,
)
from app.utils.auth_guard import login_required
from app.utils.image_upload import (
    InvalidImageError,
    PreparedImage,
    prepare_image_uploads,
    write_image_uploads,
)
from app.utils.responses import error_response, service_error


market_bp = Blueprint("market_bp", __name__, url_prefix="/api")

# Multipart form fields that carry JSON documents
_JSON_FORM_FIELDS = ("location", "attributes", "tags", "images")


def _decode_form_value(key: str, raw: str):
    text = (raw or "").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        if key == "tags":
            return [t.strip() for t in text.split(",") if t.strip()]
        return text


def _listing_payload() -> dict:
    """JSON body, or multipart form fields with JSON-encoded nested values."""
    data_json = request.get_json(silent=True)
    if isinstance(data_json, dict):
        return data_json

    form = request.form.to_dict() if request.form else {}
    data: dict = {}
    for key, value in form.items():
        if key in _JSON_FORM_FIELDS:
            decoded = _decode_form_value(key, value)
            if decoded is not None:
                data[key] = decoded
        elif key.startswith("location[") or key.startswith("location."):
            continue
        else:
            data[key] = value

    # Flat location fields: location[city]=Pune or location.city=Pune
    flat_location = {}
    for key, value in form.items():
        for prefix, suffix in (("location[", "]"), ("location.", "")):
            if key.startswith(prefix) and key.endswith(suffix):
                name = key[len(prefix): len(key) - len(suffix)] if suffix else key[len(prefix):]
                flat_location[name] = value
    if flat_location:
        base = data.get("location") if isinstance(data.get("location"), dict) else {}
        data["location"] = {**flat_location, **base}
    return data


def _prepared_images() -> list[PreparedImage]:
    files = request.files.getlist("images") if request.files else []
    if not files:
        return []
    return prepare_image_uploads(files)


def _store_images(prepared: list[PreparedImage]) -> None:
    # Files land on disk only once the listing change has been committed
    if prepared:
        write_image_uploads(prepared, current_app.config["UPLOAD_DIR"])


@market_bp.get("/listings")
def list_listings():
    params = parse_listing_query(request.args)
    return jsonify(query_listings(**params)), 200


@market_bp.get("/listings/featured")
def list_featured():
    return jsonify(featured_listings()), 200


@market_bp.get("/listings/<int:listing_id>")
def listing_detail(listing_id: int):
    res = get_listing_detail(listing_id)
    if not res.get("ok"):
        return service_error(res)
    return jsonify(res["listing"]), 200


@market_bp.post("/listings")
@login_required
def create_listing_route():
    data = _listing_payload()
    try:
        prepared = _prepared_images()
    except InvalidImageError as e:
        current_app.logger.info("listing_image_rejected code=%s user_id=%s", e.code, g.current_user.id)
        return service_error(e.to_payload())

    res = create_listing(seller=g.current_user, payload=data, uploaded_urls=[img.url for img in prepared])
    if not res.get("ok"):
        return service_error(res)
    _store_images(prepared)
    return jsonify({
        "ok": True,
        "message": "Listing created successfully",
        "listing": res["listing"].to_dict(),
    }), 201


@market_bp.put("/listings/<int:listing_id>")
@login_required
def update_listing_route(listing_id: int):
    data = _listing_payload()
    try:
        prepared = _prepared_images()
    except InvalidImageError as e:
        return service_error(e.to_payload())

    res = update_listing(
        listing_id=listing_id,
        actor=g.current_user,
        payload=data,
        uploaded_urls=[img.url for img in prepared],
    )
    if not res.get("ok"):
        return service_error(res)
    _store_images(prepared)
    return jsonify({
        "ok": True,
        "message": "Listing updated successfully",
        "listing": res["listing"].to_dict(),
    }), 200


@market_bp.delete("/listings/<int:listing_id>")
@login_required
def delete_listing_route(listing_id: int):
    res = soft_delete_listing(listing_id=listing_id, actor=g.current_user)
    if not res.get("ok"):
        return service_error(res)
    return jsonify({"ok": True, "message": "Listing deleted successfully"}), 200


@market_bp.post("/listings/<int:listing_id>/favorite")
@login_required
def favorite_listing_route(listing_id: int):
    res = toggle_favorite(listing_id=listing_id, user_id=int(g.current_user.id))
    if not res.get("ok"):
        return service_error(res)
    return jsonify(res), 200


@market_bp.get("/categories")
def categories_index():
    return jsonify(list_category_tree()), 200


@market_bp.get("/categories/<slug>/schema")
def category_schema(slug: str):
    schema = schema_for_category(slug, request.args.get("subcategory") or "")
    if schema is None:
        return error_response("CATEGORY_NOT_FOUND", "Category not found", 404)
    return jsonify({"ok": True, **schema}), 200
