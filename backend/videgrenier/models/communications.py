from __future__ import annotations

from ..extensions import db
from videgrenier.time_utils import to_utc_z


class NewsletterSubscription(db.Model):
    """Newsletter address. Unsubscribing is a soft delete (is_active=False)."""
    __tablename__ = "newsletters"
    __table_args__ = (
        db.Index("ix_newsletters_active_subscribed", "is_active", "subscribed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    subscribed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    unsubscribed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "is_active": self.is_active,
            "subscribed_at": to_utc_z(self.subscribed_at),
            "unsubscribed_at": to_utc_z(self.unsubscribed_at),
        }
