from datetime import datetime, timezone
import json

import sqlalchemy as sa

from app.extensions import db


LISTING_STATUS_ACTIVE = "active"
LISTING_STATUS_SOLD = "sold"
LISTING_STATUS_DELETED = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Listing(db.Model):
    __tablename__ = "listings"
    __table_args__ = (
        db.Index("ix_listings_status_created", "status", "created_at"),
        db.Index("ix_listings_status_category", "status", "category", "subcategory"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Owner; never reassigned after creation
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=False, default="", server_default="")

    # Smallest currency unit
    price = db.Column(db.Integer, nullable=False)

    category = db.Column(db.String(64), nullable=False, index=True)
    subcategory = db.Column(db.String(64), nullable=True, index=True)
    condition = db.Column(db.String(32), nullable=False, default="used", server_default="used")

    city = db.Column(db.String(64), nullable=False, index=True)
    state = db.Column(db.String(64), nullable=True)
    country = db.Column(db.String(64), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    # Category-specific attribute bag, JSON object
    attributes_json = db.Column(db.Text, nullable=False, default="{}", server_default="{}")
    tags_json = db.Column(db.Text, nullable=False, default="[]", server_default="[]")

    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    is_urgent = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    status = db.Column(db.String(16), nullable=False, default=LISTING_STATUS_ACTIVE, server_default=LISTING_STATUS_ACTIVE, index=True)
    views = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow, server_default=sa.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow, server_default=sa.func.now())

    seller = db.relationship("User", lazy="joined")
    images = db.relationship(
        "ListingImage",
        order_by="ListingImage.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    favorite_rows = db.relationship(
        "ListingFavorite",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def attributes(self) -> dict:
        raw = str(self.attributes_json or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except Exception:
            return {}
        return {}

    @attributes.setter
    def attributes(self, value: dict | None) -> None:
        self.attributes_json = json.dumps(dict(value or {}), separators=(",", ":"))

    @property
    def tags(self) -> list[str]:
        raw = str(self.tags_json or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(x) for x in parsed]
        except Exception:
            return []
        return []

    @tags.setter
    def tags(self, value: list | None) -> None:
        self.tags_json = json.dumps([str(x) for x in (value or [])], separators=(",", ":"))

    @property
    def favorite_user_ids(self) -> list[int]:
        return [int(row.user_id) for row in (self.favorite_rows or [])]

    def is_owned_by(self, user) -> bool:
        return user is not None and self.seller_id == user.id

    def location_dict(self) -> dict:
        payload = {
            "city": self.city or "",
            "state": self.state or "",
            "country": self.country or "",
        }
        if self.latitude is not None and self.longitude is not None:
            payload["coordinates"] = {"lat": float(self.latitude), "lng": float(self.longitude)}
        return payload

    def to_dict(self, *, include_seller_phone: bool = False, favorites_detail: list[dict] | None = None) -> dict:
        """
        Wire shape expected by the web client (camelCase keys).
        `favorites` is a list of user ids unless `favorites_detail` is given,
        in which case the populated user cards are returned instead.
        """
        seller = None
        if self.seller is not None:
            seller = self.seller.to_public_dict()
            if include_seller_phone:
                seller["phone"] = self.seller.phone or ""
        favorite_ids = self.favorite_user_ids
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "price": int(self.price or 0),
            "category": self.category or "",
            "subcategory": self.subcategory or "",
            "condition": self.condition or "",
            "location": self.location_dict(),
            "images": [img.to_dict() for img in (self.images or [])],
            "attributes": self.attributes,
            "tags": self.tags,
            "seller": seller,
            "sellerId": self.seller_id,
            "isFeatured": bool(self.is_featured),
            "isUrgent": bool(self.is_urgent),
            "status": self.status or LISTING_STATUS_ACTIVE,
            "views": int(self.views or 0),
            "favorites": favorites_detail if favorites_detail is not None else favorite_ids,
            "favoritesCount": len(favorite_ids),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class ListingImage(db.Model):
    __tablename__ = "listing_images"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    url = db.Column(db.String(1024), nullable=False)
    alt = db.Column(db.String(255), nullable=False, default="")
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "alt": self.alt or "",
            "isPrimary": bool(self.is_primary),
        }
