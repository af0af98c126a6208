from __future__ import annotations

import math
import re
from typing import Any

from flask import current_app

from app.extensions import db
from app.models import Category


def slugify(value: str) -> str:
    raw = (value or "").strip().lower()
    if not raw:
        return ""
    raw = re.sub(r"[^a-z0-9]+", "-", raw)
    raw = re.sub(r"-{2,}", "-", raw)
    return raw.strip("-")


def normalize_key(value: Any) -> str:
    """"KM Driven", "kmDriven" and "km_driven" all collapse to "kmdriven"."""
    return re.sub(r"[^a-z0-9]+", "", str(value or "").lower())


def _camel_key(name: str) -> str:
    words = [w for w in re.split(r"[^A-Za-z0-9]+", name or "") if w]
    if not words:
        return ""
    head = words[0].lower()
    return head + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])


def _text(value: Any) -> str:
    return str(value or "").strip()


def _as_float(value: Any) -> float | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _normalize_select(value: Any, allowed: list[str]) -> str:
    text = _text(value)
    if not text:
        return ""
    by_key = {option.strip().lower(): option for option in allowed}
    return by_key.get(text.lower(), "")


def _field(
    name: str,
    *,
    field_type: str = "text",
    required: bool = True,
    options: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "name": name,
        "key": _camel_key(name),
        "type": field_type,
        "options": options or [],
        "required": bool(required),
    }


BHK_OPTIONS = ["1 BHK", "2 BHK", "3 BHK", "4 BHK", "5+ BHK"]
FURNISHING_OPTIONS = ["Furnished", "Semi-Furnished", "Unfurnished"]
SIZE_OPTIONS = ["S", "M", "L", "XL", "XXL"]

HOUSING_FIELDS = [
    _field("BHK", field_type="select", options=BHK_OPTIONS),
    _field("Area", field_type="number"),
    _field("Furnishing", field_type="select", options=FURNISHING_OPTIONS),
]

DEFAULT_CATEGORIES = [
    {
        "name": "Mobiles",
        "icon": "smartphone",
        "subcategories": [
            {
                "name": "Mobile Phones",
                "attributes": [
                    _field("Brand", field_type="select", options=["Apple", "Samsung", "Xiaomi", "OnePlus", "Oppo", "Vivo", "Realme"]),
                    _field("Storage", field_type="select", options=["16GB", "32GB", "64GB", "128GB", "256GB", "512GB", "1TB"]),
                    _field("RAM", field_type="select", options=["2GB", "3GB", "4GB", "6GB", "8GB", "12GB", "16GB"]),
                ],
            },
            {
                "name": "Accessories",
                "attributes": [
                    _field("Type", field_type="select", options=["Case", "Charger", "Headphones", "Screen Guard"]),
                ],
            },
        ],
    },
    {
        "name": "Cars",
        "icon": "car",
        "subcategories": [
            {
                "name": "Cars",
                "attributes": [
                    _field("Brand", field_type="select", options=["Maruti Suzuki", "Hyundai", "Tata", "Mahindra", "Honda", "Toyota", "Ford"]),
                    _field("Fuel Type", field_type="select", options=["Petrol", "Diesel", "CNG", "Electric"]),
                    _field("Year", field_type="number"),
                    _field("KM Driven", field_type="number"),
                ],
            },
        ],
    },
    {
        "name": "Properties",
        "icon": "home",
        "subcategories": [
            {"name": "For Sale: Houses & Apartments", "attributes": HOUSING_FIELDS},
            {"name": "For Rent: Houses & Apartments", "attributes": HOUSING_FIELDS},
        ],
    },
    {
        "name": "Electronics & Appliances",
        "icon": "monitor",
        "subcategories": [
            {
                "name": "TVs, Video - Audio",
                "attributes": [
                    _field("Brand", field_type="select", options=["Samsung", "LG", "Sony", "Mi", "OnePlus"]),
                    _field("Screen Size", field_type="select", options=["32 inch", "43 inch", "50 inch", "55 inch", "65 inch"]),
                ],
            },
            {
                "name": "Kitchen & Other Appliances",
                "attributes": [
                    _field("Brand", field_type="select", options=["LG", "Samsung", "Whirlpool", "Godrej", "Haier"]),
                ],
            },
        ],
    },
    {
        "name": "Bikes",
        "icon": "bike",
        "subcategories": [
            {
                "name": "Motorcycles",
                "attributes": [
                    _field("Brand", field_type="select", options=["Hero", "Honda", "Bajaj", "TVS", "Yamaha", "Royal Enfield"]),
                    _field("Year", field_type="number"),
                    _field("KM Driven", field_type="number"),
                ],
            },
        ],
    },
    {
        "name": "Fashion",
        "icon": "shirt",
        "subcategories": [
            {"name": "Men", "attributes": [_field("Size", field_type="select", options=SIZE_OPTIONS)]},
            {"name": "Women", "attributes": [_field("Size", field_type="select", options=SIZE_OPTIONS)]},
        ],
    },
]


def seed_default_categories() -> int:
    """Insert missing default categories. Existing rows are left alone. Returns rows created."""
    created = 0
    for order, group in enumerate(DEFAULT_CATEGORIES):
        slug = slugify(group["name"])
        parent = Category.query.filter(Category.parent_id.is_(None), Category.slug == slug).first()
        if parent is None:
            parent = Category(name=group["name"], slug=slug, icon=group.get("icon"), sort_order=order)
            db.session.add(parent)
            db.session.flush()
            created += 1
        for sub_order, sub in enumerate(group.get("subcategories") or []):
            sub_slug = slugify(sub["name"])
            exists = Category.query.filter_by(parent_id=parent.id, slug=sub_slug).first()
            if exists is not None:
                continue
            child = Category(name=sub["name"], slug=sub_slug, parent_id=parent.id, sort_order=sub_order)
            child.attributes = sub.get("attributes") or []
            db.session.add(child)
            created += 1
    db.session.commit()
    if created:
        current_app.logger.info("categories_seeded created=%s", created)
    return created


def _match_category(value: str, parent_id: int | None) -> Category | None:
    wanted = slugify(value)
    if not wanted:
        return None
    q = Category.query.filter(Category.is_active.is_(True))
    if parent_id is None:
        q = q.filter(Category.parent_id.is_(None))
    else:
        q = q.filter(Category.parent_id == parent_id)
    for row in q.all():
        if wanted in (row.slug, slugify(row.name)):
            return row
    return None


def list_category_tree() -> list[dict[str, Any]]:
    rows = (
        Category.query.filter(Category.parent_id.is_(None), Category.is_active.is_(True))
        .order_by(Category.name.asc())
        .all()
    )
    return [row.to_dict(include_children=True) for row in rows]


def schema_for_category(category: str, subcategory: str = "") -> dict[str, Any] | None:
    """Attribute definitions a listing form should render; None for an unknown category."""
    parent = _match_category(category, None)
    if parent is None:
        return None
    payload = {"category": parent.to_dict(), "subcategory": None, "fields": []}
    if _text(subcategory):
        child = _match_category(subcategory, parent.id)
        if child is not None:
            payload["subcategory"] = child.to_dict()
            payload["fields"] = child.attributes
    return payload


def _find_loose(payload: dict[str, Any], key: str) -> tuple[str | None, Any]:
    wanted = normalize_key(key)
    for raw_key, value in payload.items():
        if normalize_key(raw_key) == wanted:
            return raw_key, value
    return None, None


def validate_listing_attributes(
    *,
    category: str,
    subcategory: str | None,
    attributes: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Checks an attribute bag against the subcategory's declared fields.
    Declared fields are stored under their canonical key; undeclared keys pass
    through untouched. Unknown categories and subcategories impose nothing.
    """
    clean = dict(attributes or {})
    schema = schema_for_category(category or "", subcategory or "")
    fields = list((schema or {}).get("fields") or [])
    if not fields:
        return {"ok": True, "attributes": clean, "errors": []}

    errors: list[str] = []
    out = dict(clean)
    for field in fields:
        key = str(field.get("key") or "")
        label = str(field.get("name") or key)
        raw_key, value = _find_loose(clean, key)
        if raw_key is not None:
            out.pop(raw_key, None)
        field_type = str(field.get("type") or "text")

        if value in (None, "") or (isinstance(value, str) and not value.strip()):
            if field.get("required"):
                errors.append(f"{label} is required")
            continue

        if field_type == "number":
            number = _as_float(value)
            if number is None:
                errors.append(f"{label} must be a number")
                continue
            as_int = int(number)
            out[key] = as_int if float(as_int) == number else number
        elif field_type == "select":
            options = [str(x) for x in (field.get("options") or [])]
            picked = _normalize_select(value, options)
            if not picked:
                errors.append(f"{label} must be one of: {', '.join(options)}")
                continue
            out[key] = picked
        else:
            out[key] = _text(value)

    if errors:
        return {"ok": False, "error": "INVALID_ATTRIBUTES", "errors": errors, "attributes": clean}
    return {"ok": True, "attributes": out, "errors": []}
