from __future__ import annotations

import unittest
from datetime import datetime, timedelta

from werkzeug.datastructures import MultiDict

from app import create_app
from app.extensions import db
from app.models import Listing, ListingFavorite, User
from app.services.listing_query_service import (
    favorite_listings,
    featured_listings,
    parse_listing_query,
    query_listings,
    seller_listings,
)


def _make_user(username: str) -> User:
    row = User(username=username, email=f"{username}@example.test")
    row.set_password("password123")
    db.session.add(row)
    db.session.flush()
    return row


def _make_listing(seller: User, *, title: str, price: int, category: str = "cars", city: str = "Pune",
                  status: str = "active", minutes_ago: int = 0, **extra) -> Listing:
    stamp = datetime(2024, 1, 1, 12, 0, 0) - timedelta(minutes=minutes_ago)
    row = Listing(
        seller_id=int(seller.id),
        title=title,
        description=extra.pop("description", ""),
        price=price,
        category=category,
        city=city,
        status=status,
        created_at=stamp,
        updated_at=stamp,
        **extra,
    )
    db.session.add(row)
    db.session.flush()
    return row


class ListingQueryServiceTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            seller = _make_user("query-seller")
            fan = _make_user("query-fan")
            _make_listing(seller, title="Honda City 2015", price=450000, minutes_ago=1, views=10)
            _make_listing(seller, title="Hyundai i20", price=520000, minutes_ago=2, city="Pune Camp", views=3)
            _make_listing(seller, title="Maruti Swift", price=300000, minutes_ago=3, city="Mumbai")
            _make_listing(seller, title="iPhone 13", price=55000, category="mobiles", minutes_ago=4,
                          description="Mint condition phone", is_featured=True)
            _make_listing(seller, title="Old Bicycle", price=2000, category="bikes", minutes_ago=5, status="sold")
            gone = _make_listing(seller, title="Deleted Car", price=100000, minutes_ago=6, status="deleted")
            _make_listing(seller, title="Discount 100% genuine", price=999, category="fashion", minutes_ago=7,
                          city="50%_off town")
            _make_listing(seller, title="Same time A", price=1000, category="tie", minutes_ago=10)
            _make_listing(seller, title="Same time B", price=1000, category="tie", minutes_ago=10)
            _make_listing(seller, title="Same time C", price=1000, category="tie", minutes_ago=10)
            db.session.add(ListingFavorite(user_id=int(fan.id), listing_id=int(gone.id)))
            phone = Listing.query.filter_by(title="iPhone 13").first()
            db.session.add(ListingFavorite(user_id=int(fan.id), listing_id=int(phone.id)))
            db.session.commit()
            cls.seller_id = int(seller.id)
            cls.fan_id = int(fan.id)

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.ctx.pop()

    def _titles(self, result) -> list[str]:
        return [row["title"] for row in result["listings"]]

    def test_default_excludes_sold_and_deleted(self):
        result = query_listings(limit=100)
        titles = self._titles(result)
        self.assertNotIn("Old Bicycle", titles)
        self.assertNotIn("Deleted Car", titles)
        self.assertTrue(all(row["status"] == "active" for row in result["listings"]))
        self.assertEqual(result["pagination"]["totalItems"], len(titles))

    def test_category_is_case_insensitive_and_city_is_substring(self):
        result = query_listings(category="CARS", city="pune")
        self.assertEqual(sorted(self._titles(result)), ["Honda City 2015", "Hyundai i20"])

    def test_city_wildcards_are_literal(self):
        self.assertEqual(self._titles(query_listings(city="P_ne")), [])
        self.assertEqual(self._titles(query_listings(city="Mu%ai")), [])
        self.assertEqual(self._titles(query_listings(city="50%_off")), ["Discount 100% genuine"])

    def test_price_bounds_are_inclusive(self):
        result = query_listings(category="cars", min_price=300000, max_price=450000)
        self.assertEqual(sorted(self._titles(result)), ["Honda City 2015", "Maruti Swift"])
        for row in query_listings(min_price=1000, max_price=60000, limit=100)["listings"]:
            self.assertTrue(1000 <= row["price"] <= 60000)

    def test_search_terms_match_title_or_description(self):
        self.assertEqual(self._titles(query_listings(search="mint")), ["iPhone 13"])
        self.assertEqual(sorted(self._titles(query_listings(search="swift honda"))), ["Honda City 2015", "Maruti Swift"])

    def test_sorting_and_unknown_sort_key_fallback(self):
        asc = self._titles(query_listings(category="cars", sort_by="price", sort_order="asc"))
        self.assertEqual(asc, ["Maruti Swift", "Honda City 2015", "Hyundai i20"])
        fallback = self._titles(query_listings(category="cars", sort_by="password"))
        self.assertEqual(fallback, ["Honda City 2015", "Hyundai i20", "Maruti Swift"])
        by_views = self._titles(query_listings(category="cars", sort_by="views"))
        self.assertEqual(by_views[0], "Honda City 2015")

    def test_pagination_covers_everything_once_even_with_ties(self):
        seen: list[int] = []
        page = 1
        while True:
            result = query_listings(limit=2, page=page)
            seen.extend(row["id"] for row in result["listings"])
            if not result["pagination"]["hasNext"]:
                break
            page += 1
        everything = [row["id"] for row in query_listings(limit=100)["listings"]]
        self.assertEqual(seen, everything)
        self.assertEqual(len(seen), len(set(seen)))

        ties = query_listings(category="tie", limit=1, page=2)
        self.assertEqual(ties["pagination"], {
            "currentPage": 2,
            "totalPages": 3,
            "totalItems": 3,
            "hasNext": True,
            "hasPrev": True,
        })

    def test_limit_and_page_are_clamped(self):
        result = query_listings(limit=1000, page=0)
        self.assertEqual(result["pagination"]["currentPage"], 1)
        self.assertLessEqual(len(result["listings"]), 100)
        result = query_listings(limit=0)
        self.assertEqual(len(result["listings"]), 1)

    def test_page_past_the_end_is_empty(self):
        result = query_listings(category="cars", page=50)
        self.assertEqual(result["listings"], [])
        self.assertEqual(result["pagination"]["totalItems"], 3)
        self.assertFalse(result["pagination"]["hasNext"])

    def test_parse_listing_query_accepts_aliases_and_ignores_garbage(self):
        parsed = parse_listing_query(MultiDict({
            "min_price": "100",
            "maxPrice": "abc",
            "sort_by": "price",
            "sortOrder": "ASC",
            "q": "honda",
            "limit": "5",
        }))
        self.assertEqual(parsed["min_price"], 100)
        self.assertIsNone(parsed["max_price"])
        self.assertEqual(parsed["sort_by"], "price")
        self.assertEqual(parsed["sort_order"], "asc")
        self.assertEqual(parsed["search"], "honda")
        self.assertEqual(parsed["limit"], 5)
        self.assertEqual(parsed["page"], 1)

    def test_parse_listing_query_survives_overflowing_and_non_finite_numbers(self):
        parsed = parse_listing_query(MultiDict({
            "minPrice": "1e999",
            "maxPrice": "nan",
            "page": "inf",
            "limit": "-inf",
        }))
        self.assertIsNone(parsed["min_price"])
        self.assertIsNone(parsed["max_price"])
        self.assertEqual(parsed["page"], 1)
        self.assertEqual(parsed["limit"], 20)

        parsed = parse_listing_query(MultiDict({
            "minPrice": "1e30",
            "maxPrice": "-99999999999999999999",
            "page": "99999999999999999999",
            "limit": "12.0",
        }))
        self.assertEqual(parsed["min_price"], 2**63 - 1)
        self.assertEqual(parsed["max_price"], -(2**63))
        self.assertEqual(parsed["page"], 2**63 - 1)
        self.assertEqual(parsed["limit"], 12)

    def test_huge_bounds_and_page_are_empty_not_errors(self):
        self.assertEqual(query_listings(min_price=10**30)["listings"], [])
        self.assertEqual(len(query_listings(category="cars", max_price=10**30)["listings"]), 3)

        result = query_listings(category="cars", page=2**63 - 1, limit=100)
        self.assertEqual(result["listings"], [])
        self.assertEqual(result["pagination"]["totalItems"], 3)
        self.assertFalse(result["pagination"]["hasNext"])
        self.assertTrue(result["pagination"]["hasPrev"])

    def test_featured_seller_and_favorite_views(self):
        self.assertEqual([row["title"] for row in featured_listings()], ["iPhone 13"])

        mine = [row["title"] for row in seller_listings(self.seller_id)]
        self.assertIn("Old Bicycle", mine)
        self.assertNotIn("Deleted Car", mine)

        favs = [row["title"] for row in favorite_listings(self.fan_id)]
        self.assertEqual(favs, ["iPhone 13"])


if __name__ == "__main__":
    unittest.main()
