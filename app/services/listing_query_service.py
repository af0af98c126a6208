from __future__ import annotations

import math
from typing import Any

from sqlalchemy import func, or_

from app.models import Listing, ListingFavorite
from app.models.listing import LISTING_STATUS_ACTIVE, LISTING_STATUS_DELETED


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
FEATURED_LIMIT = 10
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

SORT_COLUMNS = {
    "createdAt": Listing.created_at,
    "updatedAt": Listing.updated_at,
    "price": Listing.price,
    "views": Listing.views,
    "title": Listing.title,
}

# snake_case spellings accepted alongside the camelCase query params
PARAM_ALIASES = {
    "minPrice": ("minPrice", "min_price", "price_min"),
    "maxPrice": ("maxPrice", "max_price", "price_max"),
    "sortBy": ("sortBy", "sort_by", "sort"),
    "sortOrder": ("sortOrder", "sort_order", "order"),
    "search": ("search", "q"),
}


def _clamp_int64(value: int) -> int:
    return max(INT64_MIN, min(int(value), INT64_MAX))


def _safe_int(raw, default: int | None = None) -> int | None:
    """Integer query param. Unparseable or non-finite input is absent; huge values clamp to 64 bits."""
    if raw is None or raw == "":
        return default
    text = str(raw).strip()
    try:
        value = int(text)
    except ValueError:
        try:
            parsed = float(text)
        except ValueError:
            return default
        if not math.isfinite(parsed):
            return default
        value = int(parsed)
    return _clamp_int64(value)


def _text(value: Any) -> str:
    return str(value or "").strip()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, value: str):
    return column.ilike(f"%{_escape_like(value)}%", escape="\\")


def parse_listing_query(args) -> dict[str, Any]:
    """Pull the listing query params out of a request args mapping."""

    def pick(name: str):
        for key in PARAM_ALIASES.get(name, (name,)):
            value = args.get(key)
            if value not in (None, ""):
                return value
        return None

    return {
        "category": _text(pick("category")),
        "subcategory": _text(pick("subcategory")),
        "city": _text(pick("city")),
        "min_price": _safe_int(pick("minPrice")),
        "max_price": _safe_int(pick("maxPrice")),
        "search": _text(pick("search")),
        "page": _safe_int(pick("page"), 1),
        "limit": _safe_int(pick("limit"), DEFAULT_PAGE_SIZE),
        "sort_by": _text(pick("sortBy")) or "createdAt",
        "sort_order": _text(pick("sortOrder")).lower() or "desc",
    }


def _apply_filters(
    query,
    *,
    category: str = "",
    subcategory: str = "",
    city: str = "",
    min_price: int | None = None,
    max_price: int | None = None,
    search: str = "",
):
    query = query.filter(Listing.status == LISTING_STATUS_ACTIVE)
    if category:
        query = query.filter(func.lower(Listing.category) == category.lower())
    if subcategory:
        query = query.filter(func.lower(Listing.subcategory) == subcategory.lower())
    if city:
        query = query.filter(_contains(Listing.city, city))
    if min_price is not None:
        query = query.filter(Listing.price >= _clamp_int64(min_price))
    if max_price is not None:
        query = query.filter(Listing.price <= _clamp_int64(max_price))

    terms = [t for t in search.split() if t]
    if terms:
        query = query.filter(
            or_(*[or_(_contains(Listing.title, t), _contains(Listing.description, t)) for t in terms])
        )
    return query


def query_listings(
    *,
    category: str = "",
    subcategory: str = "",
    city: str = "",
    min_price: int | None = None,
    max_price: int | None = None,
    search: str = "",
    page: int | None = 1,
    limit: int | None = DEFAULT_PAGE_SIZE,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> dict[str, Any]:
    """
    Filtered, sorted and paginated view over active listings.

    Ordering always ends on the id in the same direction so that pages never
    overlap when the sort column has ties.
    """
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit if limit is not None else DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))

    base = _apply_filters(
        Listing.query,
        category=category,
        subcategory=subcategory,
        city=city,
        min_price=min_price,
        max_price=max_price,
        search=search,
    )

    sort_col = SORT_COLUMNS.get(sort_by or "", Listing.created_at)
    if (sort_order or "").lower() == "asc":
        ordered = base.order_by(sort_col.asc(), Listing.id.asc())
    else:
        ordered = base.order_by(sort_col.desc(), Listing.id.desc())

    total = base.order_by(None).count()
    offset = (page - 1) * limit
    # SQLite and most drivers reject an OFFSET past the signed 64-bit range
    rows = ordered.offset(offset).limit(limit).all() if offset <= INT64_MAX and offset < total else []
    total_pages = int(math.ceil(total / float(limit))) if total else 0

    return {
        "listings": [row.to_dict() for row in rows],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalItems": int(total),
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


def featured_listings(limit: int = FEATURED_LIMIT) -> list[dict[str, Any]]:
    rows = (
        Listing.query.filter(Listing.status == LISTING_STATUS_ACTIVE, Listing.is_featured.is_(True))
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .limit(max(1, min(int(limit), FEATURED_LIMIT)))
        .all()
    )
    return [row.to_dict() for row in rows]


def seller_listings(user_id: int) -> list[dict[str, Any]]:
    rows = (
        Listing.query.filter(Listing.seller_id == int(user_id), Listing.status != LISTING_STATUS_DELETED)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


def favorite_listings(user_id: int) -> list[dict[str, Any]]:
    rows = (
        Listing.query.join(ListingFavorite, ListingFavorite.listing_id == Listing.id)
        .filter(ListingFavorite.user_id == int(user_id), Listing.status == LISTING_STATUS_ACTIVE)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]
