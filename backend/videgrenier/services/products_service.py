# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Review, Sale, StockRecord, Supply, User
from ..errors import ForbiddenError, NotFoundError, ProductInUseError
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import stock_service
from .concurrency import lock_for_update, run_with_retry
"""
Catalog rules:
- Product.quantity is only set at creation; afterwards it moves through sales and supplies.
- Creating a product opens its current-month StockRecord at the initial quantity.
- Sellers manage their own products; admins manage all.
- Deletion is blocked while sales, supplies or reviews reference the product.
  Stock records are derived data and are deleted with the product.
"""

CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "owner_id", "creator_name", "name", "category", "price", "quantity",
        "photo", "photo_public_id", "description",
    },
    required_on_create={"name", "price"},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"creator_name", "name", "category", "price", "photo", "photo_public_id", "description"},
)


@dataclass
class ProductDeletion:
    product_id: int
    product_name: str
    deleted_stock_records: int


def _check_can_manage(product: Product, user: User) -> None:
    if not user.is_admin and product.owner_id != user.id:
        raise ForbiddenError("You can only manage your own products")


def list_products(*, owner_id: int | None = None, category: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if owner_id is not None:
        query = query.filter(Product.owner_id == owner_id)
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


def create_product(payload: dict, user: User) -> Product:
    """
    Create a listing and its current-month stock record.

    Admins may create on behalf of another seller (owner_id); sellers always
    own what they create.
    """
    patch = validate_payload(model=Product, payload=payload, policy=CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    requested_owner = patch.pop("owner_id", None)
    owner_id = requested_owner if user.is_admin and requested_owner else user.id

    def _op():
        product = Product(owner_id=owner_id, **patch)
        if product.quantity is None:
            product.quantity = 0
        if not product.creator_name:
            product.creator_name = user.full_name or "Unknown"
        db.session.add(product)
        db.session.flush()

        stock_service.get_current_month_record(product)

        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product %s created by user %s", product.id, user.id)
    return product


def update_product(product_id: int, payload: dict, user: User) -> Product:
    """Edit listing metadata and price. Quantity is not writable here."""
    patch = validate_payload(model=Product, payload=payload, policy=UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")
        _check_can_manage(product, user)

        for key, value in patch.items():
            setattr(product, key, value)

        db.session.commit()
        return product

    return run_with_retry(_op)


def product_dependencies(product_id: int) -> list[dict]:
    """Primary records that block deletion, as [{"type", "count"}] (non-zero only)."""
    counts = [
        ("sales", db.session.query(func.count(Sale.id)).filter(Sale.product_id == product_id).scalar()),
        ("supplies", db.session.query(func.count(Supply.id)).filter(Supply.product_id == product_id).scalar()),
        ("reviews", db.session.query(func.count(Review.id)).filter(Review.product_id == product_id).scalar()),
    ]
    return [{"type": kind, "count": count} for kind, count in counts if count]


def delete_product(product_id: int, user: User) -> ProductDeletion:
    """
    Delete a product and its stock records.

    Raises:
        NotFoundError: product does not exist
        ForbiddenError: seller deleting someone else's product
        ProductInUseError: sales, supplies or reviews still reference it
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")
        _check_can_manage(product, user)

        dependencies = product_dependencies(product.id)
        if dependencies:
            raise ProductInUseError(dependencies)

        # Stock records go with the product (ORM cascade + ON DELETE CASCADE)
        deleted_records = (
            db.session.query(func.count(StockRecord.id))
            .filter(StockRecord.product_id == product.id)
            .scalar()
        )
        result = ProductDeletion(
            product_id=product.id,
            product_name=product.name,
            deleted_stock_records=deleted_records,
        )

        db.session.delete(product)
        db.session.commit()
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "Product %s deleted with %s stock record(s)", result.product_id, result.deleted_stock_records
    )
    return result
