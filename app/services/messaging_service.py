from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy import or_

from app.extensions import db
from app.models import Listing, Message, User


MAX_MESSAGE_CHARS = 2000


def _as_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def send_message(*, sender: User, listing_id: Any, receiver_id: Any, body: Any) -> dict[str, Any]:
    text = str(body or "").strip()
    if not text:
        return {"ok": False, "error": "VALIDATION_ERROR", "message": "message is required"}
    if len(text) > MAX_MESSAGE_CHARS:
        return {"ok": False, "error": "VALIDATION_ERROR", "message": f"message must be at most {MAX_MESSAGE_CHARS} characters"}

    lid = _as_id(listing_id)
    listing = db.session.get(Listing, lid) if lid is not None else None
    if listing is None:
        return {"ok": False, "error": "LISTING_NOT_FOUND", "message": "Listing not found"}

    rid = _as_id(receiver_id)
    receiver = db.session.get(User, rid) if rid is not None else None
    if receiver is None:
        return {"ok": False, "error": "RECEIVER_NOT_FOUND", "message": "Receiver not found"}
    if int(receiver.id) == int(sender.id):
        return {"ok": False, "error": "VALIDATION_ERROR", "message": "You cannot message yourself"}

    msg = Message(listing_id=int(listing.id), sender_id=int(sender.id), receiver_id=int(receiver.id), body=text)
    db.session.add(msg)
    db.session.commit()
    current_app.logger.info(
        "message_sent message_id=%s listing_id=%s sender_id=%s receiver_id=%s",
        msg.id,
        listing.id,
        sender.id,
        receiver.id,
    )
    return {"ok": True, "data": msg.to_dict()}


def messages_for_user(user_id: int) -> list[dict[str, Any]]:
    rows = (
        Message.query.filter(or_(Message.sender_id == int(user_id), Message.receiver_id == int(user_id)))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]
