from datetime import datetime, timezone

from app.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Message(db.Model):
    __tablename__ = "messages"
    __table_args__ = (
        db.Index("ix_messages_sender_created", "sender_id", "created_at"),
        db.Index("ix_messages_receiver_created", "receiver_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    listing = db.relationship("Listing", lazy="joined")
    sender = db.relationship("User", foreign_keys=[sender_id], lazy="joined")
    receiver = db.relationship("User", foreign_keys=[receiver_id], lazy="joined")

    def to_dict(self) -> dict:
        listing = None
        if self.listing is not None:
            primary = next((img for img in (self.listing.images or []) if img.is_primary), None)
            listing = {
                "id": self.listing.id,
                "title": self.listing.title,
                "price": int(self.listing.price or 0),
                "image": primary.url if primary is not None else "",
            }
        return {
            "id": self.id,
            "listing": listing,
            "sender": self.sender.to_public_dict() if self.sender is not None else None,
            "receiver": self.receiver.to_public_dict() if self.receiver is not None else None,
            "message": self.body or "",
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
