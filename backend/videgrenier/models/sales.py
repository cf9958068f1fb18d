from __future__ import annotations

from ..extensions import db
from videgrenier.time_utils import to_utc_z

SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_PENDING = "pending"
SALE_STATUS_REFUNDED = "refunded"
SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_PENDING, SALE_STATUS_REFUNDED)


class Sale(db.Model):
    """
    Completed (or pending payment) sale of a single product line.

    The seller, buyer identity, and unit price are snapshots taken at sale
    time; later product edits never change a past sale. product_id is nulled
    if the product row disappears so the sale survives as history.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint(
            "status IN ('completed', 'pending', 'refunded')",
            name="ck_sales_status",
        ),
        db.Index("ix_sales_seller_created", "seller_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # ORD-<epoch ms>-<random>, globally unique
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    buyer_name = db.Column(db.String(255), nullable=True)
    buyer_email = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)
    payment_method = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("sales", lazy=True, passive_deletes=True))
    seller = db.relationship("User", foreign_keys=[seller_id])
    buyer = db.relationship("User", foreign_keys=[buyer_id])

    def __repr__(self) -> str:
        return f"<Sale id={self.id} order_id={self.order_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "seller_id": self.seller_id,
            "buyer_id": self.buyer_id,
            "buyer_name": self.buyer_name,
            "buyer_email": self.buyer_email,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }
