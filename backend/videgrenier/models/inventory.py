from __future__ import annotations

from ..extensions import db
from videgrenier.time_utils import to_iso_date, to_utc_z


def _money(value):
    return str(value) if value is not None else None


class Product(db.Model):
    """
    Product listing owned by a seller.

    QUANTITY DESIGN DECISION:
    Product.quantity is the AUTHORITATIVE on-hand count.
    - Incremented by supplies, decremented by sales (see services)
    - Never edited directly through the product update path
    - CHECK constraint keeps it >= 0 even if a code path forgets to guard

    Stock history lives in StockRecord (one row per product per month) and is
    owned by the product: deleting a product cascades to its stock records.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_owner_name", "owner_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    # Display name of the seller as entered on the listing
    creator_name = db.Column(db.String(100), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100), nullable=True, index=True)

    # XAF amounts, two decimals
    price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    photo = db.Column(db.String(500), nullable=True)
    photo_public_id = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner = db.relationship("User", backref=db.backref("products", lazy=True))
    stock_records = db.relationship(
        "StockRecord",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "creator_name": self.creator_name,
            "name": self.name,
            "category": self.category,
            "price": _money(self.price),
            "quantity": self.quantity,
            "photo": self.photo,
            "photo_public_id": self.photo_public_id,
            "description": self.description,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockRecord(db.Model):
    """
    Monthly stock ledger entry.

    One row per (product, calendar month), keyed by the first day of the month.
    Created lazily by the first sale or supply touching the product in a month,
    carrying forward the previous month's closing quantity.

    INVARIANT: stock_value == current_quantity * unit_price after every write.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "period_start", name="uq_stock_records_product_period"),
        db.CheckConstraint("sold_quantity >= 0", name="ck_stock_records_sold_non_negative"),
        db.CheckConstraint("supplied_quantity >= 0", name="ck_stock_records_supplied_non_negative"),
        db.Index("ix_stock_records_period", "period_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Always the first day of the month
    period_start = db.Column(db.Date, nullable=False)

    opening_quantity = db.Column(db.Integer, nullable=False, default=0)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)
    supplied_quantity = db.Column(db.Integer, nullable=False, default=0)
    current_quantity = db.Column(db.Integer, nullable=False, default=0)

    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    stock_value = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="stock_records")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockRecord id={self.id} product_id={self.product_id} "
            f"period={self.period_start} current={self.current_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "period_start": to_iso_date(self.period_start),
            "year": self.period_start.year if self.period_start else None,
            "month": self.period_start.month if self.period_start else None,
            "opening_quantity": self.opening_quantity,
            "sold_quantity": self.sold_quantity,
            "supplied_quantity": self.supplied_quantity,
            "current_quantity": self.current_quantity,
            "unit_price": _money(self.unit_price),
            "stock_value": _money(self.stock_value),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """Company or person that restocks products."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_suppliers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Supply(db.Model):
    """
    Incoming stock event.

    Applied to Product.quantity and to the current month's StockRecord in the
    same transaction it is written in. Status is always "delivered".
    """
    __tablename__ = "supplies"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_supplies_quantity_positive"),
        db.Index("ix_supplies_product_date", "product_id", "supply_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(14, 2), nullable=False)

    supply_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(32), nullable=False, default="delivered")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("supplies", lazy=True))
    user = db.relationship("User")
    supplier = db.relationship("Supplier", backref=db.backref("supplies", lazy=True))

    def __repr__(self) -> str:
        return f"<Supply id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "user_id": self.user_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
            "supply_date": to_iso_date(self.supply_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
