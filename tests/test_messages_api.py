from __future__ import annotations

import unittest

from app import create_app
from app.extensions import db
from app.models import Listing, User
from app.utils.jwt_utils import create_token


def _make_user(username: str) -> User:
    row = User(username=username, email=f"{username}@example.test")
    row.set_password("password123")
    db.session.add(row)
    db.session.flush()
    return row


class MessagesApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            seller = _make_user("msg-seller")
            buyer = _make_user("msg-buyer")
            outsider = _make_user("msg-outsider")
            listing = Listing(seller_id=int(seller.id), title="Guitar", price=8000, category="hobbies", city="Pune")
            db.session.add(listing)
            db.session.commit()
            cls.seller_id = int(seller.id)
            cls.buyer_id = int(buyer.id)
            cls.listing_id = int(listing.id)
            cls.seller_token = create_token(int(seller.id))
            cls.buyer_token = create_token(int(buyer.id))
            cls.outsider_token = create_token(int(outsider.id))
        cls.client = cls.app.test_client()

    def _send(self, token: str, **payload):
        return self.client.post("/api/messages", json=payload, headers={"Authorization": f"Bearer {token}"})

    def _inbox(self, token: str):
        return self.client.get("/api/messages", headers={"Authorization": f"Bearer {token}"})

    def test_send_and_list_conversation(self):
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=self.seller_id, message="Is it available?")
        self.assertEqual(res.status_code, 201)
        body = res.get_json()
        self.assertEqual(body["message"], "Message sent successfully")
        data = body["data"]
        self.assertEqual(data["message"], "Is it available?")
        self.assertEqual(data["sender"]["id"], self.buyer_id)
        self.assertEqual(data["receiver"]["username"], "msg-seller")
        self.assertEqual(data["listing"]["title"], "Guitar")

        res = self._send(self.seller_token, listingId=self.listing_id, receiverId=self.buyer_id, message="Yes")
        self.assertEqual(res.status_code, 201)

        seller_box = self._inbox(self.seller_token).get_json()
        self.assertEqual([m["message"] for m in seller_box][:2], ["Yes", "Is it available?"])
        buyer_box = self._inbox(self.buyer_token).get_json()
        self.assertEqual(len(buyer_box), len(seller_box))
        self.assertEqual(self._inbox(self.outsider_token).get_json(), [])

    def test_validation(self):
        res = self._send(self.buyer_token, listingId=999999, receiverId=self.seller_id, message="hi")
        self.assertEqual(res.status_code, 404)
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=999999, message="hi")
        self.assertEqual(res.status_code, 404)
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=self.seller_id, message="   ")
        self.assertEqual(res.status_code, 400)
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=self.buyer_id, message="me")
        self.assertEqual(res.status_code, 400)

    def test_message_length_limit(self):
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=self.seller_id, message="x" * 2001)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "VALIDATION_ERROR")
        # surrounding whitespace does not count
        res = self._send(self.buyer_token, listingId=self.listing_id, receiverId=self.seller_id,
                         message="  " + "y" * 2000 + "  ")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(len(res.get_json()["data"]["message"]), 2000)

    def test_requires_auth(self):
        self.assertEqual(self.client.get("/api/messages").status_code, 401)
        self.assertEqual(self.client.post("/api/messages", json={}).status_code, 401)


if __name__ == "__main__":
    unittest.main()
