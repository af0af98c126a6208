from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import Listing, ListingFavorite, ListingImage, User
from app.models.listing import (
    LISTING_STATUS_ACTIVE,
    LISTING_STATUS_DELETED,
    LISTING_STATUS_SOLD,
)
from app.services.category_schema import validate_listing_attributes


CONDITIONS = ("new", "used", "refurbished")
# Largest value the INTEGER price column can hold
MAX_PRICE = 2**63 - 1
WRITABLE_STATUSES = (LISTING_STATUS_ACTIVE, LISTING_STATUS_SOLD)
UPDATABLE_FIELDS = (
    "title",
    "description",
    "price",
    "category",
    "subcategory",
    "condition",
    "location",
    "attributes",
    "tags",
    "isUrgent",
    "status",
    "images",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _text(value: Any) -> str:
    return str(value or "").strip()


def _as_price(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    raw = _text(value)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        parsed = float(raw)
    except ValueError:
        return None
    return int(parsed) if parsed.is_integer() else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _text(value).lower() in ("1", "true", "yes", "on")


def _as_coord(value: Any) -> float | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _invalid(message: str, **extra) -> dict[str, Any]:
    payload = {"ok": False, "error": "VALIDATION_ERROR", "message": message}
    payload.update(extra)
    return payload


def normalize_images(entries: list | None, *, title: str) -> list[dict[str, Any]]:
    """
    Accepts URLs or {url, alt, isPrimary} objects. Exactly one image comes
    out primary: the first one flagged, or the first one when none is.
    """
    images: list[dict[str, Any]] = []
    for entry in entries or []:
        if isinstance(entry, dict):
            url = _text(entry.get("url"))
            alt = _text(entry.get("alt"))
            primary = _as_bool(entry.get("isPrimary", entry.get("is_primary")))
        else:
            url, alt, primary = _text(entry), "", False
        if not url:
            continue
        images.append({"url": url, "alt": alt, "is_primary": primary})

    primary_index = next((i for i, img in enumerate(images) if img["is_primary"]), 0)
    for idx, img in enumerate(images):
        img["is_primary"] = idx == primary_index
        if not img["alt"]:
            img["alt"] = f"{title} - Image {idx + 1}"
    return images


def _replace_images(listing: Listing, images: list[dict[str, Any]]) -> None:
    listing.images = [
        ListingImage(position=idx, url=img["url"], alt=img["alt"], is_primary=img["is_primary"])
        for idx, img in enumerate(images)
    ]


def _apply_location(listing: Listing, location: dict[str, Any]) -> None:
    for key in ("city", "state", "country"):
        if key in location:
            setattr(listing, key, _text(location.get(key)) or None)
    coords = location.get("coordinates")
    if isinstance(coords, dict):
        listing.latitude = _as_coord(coords.get("lat"))
        listing.longitude = _as_coord(coords.get("lng"))


def create_listing(*, seller: User, payload: dict[str, Any], uploaded_urls: list[str] | None = None) -> dict[str, Any]:
    data = dict(payload or {})

    title = _text(data.get("title"))
    if not title:
        return _invalid("title is required")
    price = _as_price(data.get("price"))
    if price is None or price <= 0:
        return _invalid("price must be a positive integer")
    if price > MAX_PRICE:
        return _invalid("price is too large")
    category = _text(data.get("category"))
    if not category:
        return _invalid("category is required")
    location = data.get("location") if isinstance(data.get("location"), dict) else {}
    if not _text(location.get("city")):
        return _invalid("location.city is required")
    condition = _text(data.get("condition")).lower() or "used"
    if condition not in CONDITIONS:
        return _invalid(f"condition must be one of: {', '.join(CONDITIONS)}")

    subcategory = _text(data.get("subcategory"))
    attrs_in = data.get("attributes")
    if attrs_in is not None and not isinstance(attrs_in, dict):
        return _invalid("attributes must be an object")
    attrs = validate_listing_attributes(category=category, subcategory=subcategory, attributes=attrs_in)
    if not attrs.get("ok"):
        return attrs

    listing = Listing(
        seller_id=int(seller.id),
        title=title,
        description=_text(data.get("description")),
        price=price,
        category=category,
        subcategory=subcategory or None,
        condition=condition,
        is_urgent=_as_bool(data.get("isUrgent")),
        status=LISTING_STATUS_ACTIVE,
        views=0,
    )
    _apply_location(listing, location)
    listing.attributes = attrs["attributes"]
    tags = data.get("tags")
    listing.tags = tags if isinstance(tags, list) else []

    entries = list(data.get("images") or []) if isinstance(data.get("images"), list) else []
    entries.extend(uploaded_urls or [])
    _replace_images(listing, normalize_images(entries, title=title))

    db.session.add(listing)
    db.session.commit()
    current_app.logger.info("listing_created listing_id=%s seller_id=%s", listing.id, seller.id)
    return {"ok": True, "listing": listing}


def update_listing(
    *,
    listing_id: int,
    actor: User,
    payload: dict[str, Any],
    uploaded_urls: list[str] | None = None,
) -> dict[str, Any]:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}
    # Ownership is decided before anything in the payload is looked at
    if not listing.is_owned_by(actor):
        current_app.logger.info("listing_update_forbidden listing_id=%s user_id=%s", listing.id, actor.id)
        return {"ok": False, "error": "FORBIDDEN", "message": "Not authorized to update this listing"}
    if listing.status == LISTING_STATUS_DELETED:
        return {"ok": False, "error": "LISTING_DELETED", "message": "Deleted listings cannot be updated"}

    data = {k: v for k, v in dict(payload or {}).items() if k in UPDATABLE_FIELDS}
    if not data and not uploaded_urls:
        return _invalid("No updatable fields supplied")

    error = _apply_update(listing, data, uploaded_urls or [])
    if error is not None:
        db.session.rollback()
        return error

    listing.updated_at = _utcnow()
    db.session.commit()
    current_app.logger.info("listing_updated listing_id=%s fields=%s", listing.id, ",".join(sorted(data)))
    return {"ok": True, "listing": listing}


def _apply_update(listing: Listing, data: dict[str, Any], uploaded_urls: list[str]) -> dict[str, Any] | None:
    """Mutates the row in place; returns an error result on the first invalid field."""
    if "title" in data:
        title = _text(data["title"])
        if not title:
            return _invalid("title cannot be empty")
        listing.title = title
    if "description" in data:
        listing.description = _text(data["description"])
    if "price" in data:
        price = _as_price(data["price"])
        if price is None or price <= 0:
            return _invalid("price must be a positive integer")
        if price > MAX_PRICE:
            return _invalid("price is too large")
        listing.price = price
    if "condition" in data:
        condition = _text(data["condition"]).lower()
        if condition not in CONDITIONS:
            return _invalid(f"condition must be one of: {', '.join(CONDITIONS)}")
        listing.condition = condition
    if "location" in data:
        location = data["location"] if isinstance(data["location"], dict) else {}
        if "city" in location and not _text(location.get("city")):
            return _invalid("location.city cannot be empty")
        _apply_location(listing, location)
    if "tags" in data:
        listing.tags = data["tags"] if isinstance(data["tags"], list) else []
    if "isUrgent" in data:
        listing.is_urgent = _as_bool(data["isUrgent"])
    if "status" in data:
        status = _text(data["status"]).lower()
        if status not in WRITABLE_STATUSES:
            return _invalid(f"status must be one of: {', '.join(WRITABLE_STATUSES)}")
        listing.status = status

    if any(k in data for k in ("category", "subcategory", "attributes")):
        category = _text(data.get("category", listing.category))
        if not category:
            return _invalid("category cannot be empty")
        subcategory = _text(data.get("subcategory", listing.subcategory))
        attrs_in = data.get("attributes", listing.attributes)
        if not isinstance(attrs_in, dict):
            return _invalid("attributes must be an object")
        attrs = validate_listing_attributes(category=category, subcategory=subcategory, attributes=attrs_in)
        if not attrs.get("ok"):
            return attrs
        listing.category = category
        listing.subcategory = subcategory or None
        listing.attributes = attrs["attributes"]

    if "images" in data or uploaded_urls:
        if "images" in data:
            entries = list(data["images"]) if isinstance(data["images"], list) else []
        else:
            entries = [img.to_dict() for img in listing.images]
        entries.extend(uploaded_urls)
        _replace_images(listing, normalize_images(entries, title=listing.title))
    return None


def soft_delete_listing(*, listing_id: int, actor: User) -> dict[str, Any]:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}
    if not listing.is_owned_by(actor):
        current_app.logger.info("listing_delete_forbidden listing_id=%s user_id=%s", listing.id, actor.id)
        return {"ok": False, "error": "FORBIDDEN", "message": "Not authorized to delete this listing"}
    if listing.status != LISTING_STATUS_DELETED:
        listing.status = LISTING_STATUS_DELETED
        listing.updated_at = _utcnow()
        db.session.commit()
        current_app.logger.info("listing_soft_deleted listing_id=%s", listing.id)
    return {"ok": True, "listing": listing}


def increment_listing_views(listing_id: int) -> bool:
    """Single UPDATE ... SET views = views + 1; returns False when no row matched."""
    # updated_at is pinned so that reads never count as edits
    updated = (
        Listing.query.filter_by(id=int(listing_id))
        .update(
            {Listing.views: Listing.views + 1, Listing.updated_at: Listing.updated_at},
            synchronize_session=False,
        )
    )
    db.session.commit()
    return bool(updated)


def get_listing_detail(listing_id: int) -> dict[str, Any]:
    if not increment_listing_views(listing_id):
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}
    fans = []
    ids = listing.favorite_user_ids
    if ids:
        fans = [{"id": u.id, "username": u.username} for u in User.query.filter(User.id.in_(ids)).order_by(User.id.asc()).all()]
    return {"ok": True, "listing": listing.to_dict(include_seller_phone=True, favorites_detail=fans)}


def toggle_favorite(*, listing_id: int, user_id: int) -> dict[str, Any]:
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}

    existing = ListingFavorite.query.filter_by(user_id=int(user_id), listing_id=int(listing_id)).first()
    if existing is not None:
        db.session.delete(existing)
        db.session.commit()
        is_favorited = False
    else:
        db.session.add(ListingFavorite(user_id=int(user_id), listing_id=int(listing_id)))
        try:
            db.session.commit()
        except IntegrityError:
            # Concurrent insert by the same user already holds the row
            db.session.rollback()
        is_favorited = True

    count = ListingFavorite.query.filter_by(listing_id=int(listing_id)).count()
    return {
        "ok": True,
        "isFavorited": is_favorited,
        "favoritesCount": int(count),
        "message": "Added to favorites" if is_favorited else "Removed from favorites",
    }
