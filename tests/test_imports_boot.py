from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("app")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        module = importlib.import_module("main")
        app = getattr(module, "app", None)
        self.assertIsNotNone(app)

    def test_import_segments(self):
        for name in (
            "app.segments.segment_auth_routes",
            "app.segments.segment_market",
            "app.segments.segment_users",
            "app.segments.segment_messages",
        ):
            self.assertIsNotNone(importlib.import_module(name))

    def test_expected_routes_registered(self):
        module = importlib.import_module("app")
        app = module.create_app()
        rules = {rule.rule for rule in app.url_map.iter_rules()}
        for expected in (
            "/api/auth/register",
            "/api/auth/login",
            "/api/auth/me",
            "/api/listings",
            "/api/listings/featured",
            "/api/listings/<int:listing_id>",
            "/api/listings/<int:listing_id>/favorite",
            "/api/users/my-listings",
            "/api/users/my-favorites",
            "/api/users/profile",
            "/api/messages",
            "/api/categories",
            "/health",
            "/api/health",
        ):
            self.assertIn(expected, rules)


if __name__ == "__main__":
    unittest.main()
