from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from flask import Flask

from app.utils.observability import _before_send_scrub, init_sentry


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            with patch("sentry_sdk.init") as sentry_init:
                init_sentry(app)
        sentry_init.assert_not_called()

    def test_scrubs_auth_headers(self):
        event = {"request": {"headers": {"Authorization": "Bearer abc", "Cookie": "sid=1", "Accept": "*/*"}}}
        out = _before_send_scrub(event, None)
        headers = out["request"]["headers"]
        self.assertEqual(headers["Authorization"], "[REDACTED]")
        self.assertEqual(headers["Cookie"], "[REDACTED]")
        self.assertEqual(headers["Accept"], "*/*")


if __name__ == "__main__":
    unittest.main()
