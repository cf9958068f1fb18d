from __future__ import annotations

from ..extensions import db
from videgrenier.time_utils import to_utc_z

REVIEW_STATUSES = ("pending", "approved", "rejected")


class Review(db.Model):
    """Public product review. Moderated: only approved reviews count in stats."""
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint("product_id", "customer_email", name="uq_reviews_product_email"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        db.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_reviews_status"),
        db.Index("ix_reviews_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)

    rating = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    # Reviewer bought the product
    verified = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="pending")
    helpful_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("reviews", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "rating": self.rating,
            "title": self.title,
            "comment": self.comment,
            "verified": self.verified,
            "status": self.status,
            "helpful_count": self.helpful_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
