from datetime import datetime, timezone
import json

import sqlalchemy as sa

from app.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("parent_id", "slug", name="uq_categories_parent_slug"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, index=True)
    icon = db.Column(db.String(32), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Attribute definitions for listing forms: [{name, key, type, options, required}]
    attributes_json = db.Column(db.Text, nullable=False, default="[]", server_default="[]")

    sort_order = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    children = db.relationship(
        "Category",
        order_by="Category.sort_order",
        lazy="selectin",
    )

    @property
    def attributes(self) -> list[dict]:
        try:
            parsed = json.loads(self.attributes_json or "[]")
        except Exception:
            return []
        return [row for row in parsed if isinstance(row, dict)] if isinstance(parsed, list) else []

    @attributes.setter
    def attributes(self, value: list[dict] | None) -> None:
        self.attributes_json = json.dumps(list(value or []), separators=(",", ":"))

    def to_dict(self, *, include_children: bool = False) -> dict:
        payload = {
            "id": int(self.id),
            "name": self.name or "",
            "slug": self.slug or "",
            "icon": self.icon or "",
            "parentId": int(self.parent_id) if self.parent_id is not None else None,
            "attributes": self.attributes,
        }
        if include_children:
            payload["subcategories"] = [c.to_dict() for c in (self.children or []) if c.is_active]
        return payload
