# Overview: Service-layer operations for supplies; encapsulates business logic and database work.

"""
Supply Recorder

A supply is an incoming stock event. Creating, resizing or deleting one moves
Product.quantity and the CURRENT month's StockRecord by the same amount, in
the same transaction.

Valuation:
- The ledger is revalued at the product's selling price, not the supply's
  purchase price. Supplier cost (Supply.total_price) and ledger valuation are
  deliberately independent.

Guards:
- A supply cannot move to another product once recorded.
- Shrinking or deleting a supply whose units were already sold would drive
  Product.quantity negative; that is refused with InsufficientStockError.
- Ledger quantities are floored at zero.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, Supplier, Supply, User
from ..errors import ConflictError, ForbiddenError, InsufficientStockError, NotFoundError, ValidationError
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_supply,
    validate_payload,
)
from videgrenier.time_utils import utcnow
from . import stock_service
from .concurrency import lock_for_update, run_with_retry

SUPPLY_STATUS_DELIVERED = "delivered"

SUPPLY_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "user_id", "supplier_id", "quantity", "unit_price", "supply_date", "notes"},
    required_on_create={"product_id", "quantity", "unit_price"},
)


def _total(quantity: int, unit_price) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(Decimal("0.01"))


def _lock_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _check_owner(product: Product, user: User) -> None:
    if not user.is_admin and product.owner_id != user.id:
        raise ForbiddenError("You can only manage supplies for your own products")


def _check_supplier(supplier_id: int | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError("Supplier not found")


def _check_user(user_id: int | None) -> None:
    if user_id is not None and db.session.get(User, user_id) is None:
        raise NotFoundError("User not found", details={"user_id": user_id})


def _apply_delta(product: Product, delta: int) -> None:
    """Move product quantity and current-month ledger by `delta` units."""
    if delta == 0:
        return

    if product.quantity + delta < 0:
        raise InsufficientStockError(
            f"Cannot remove {-delta} units: only {product.quantity} left in stock",
            available=product.quantity,
            product_id=product.id,
        )

    record = stock_service.get_current_month_record(product)
    product.quantity += delta
    stock_service.apply_supply(record, delta, product.price)


def create_supply(payload: dict, user: User) -> Supply:
    """
    Record a delivery and add its units to stock.

    Args:
        payload: product_id, quantity, unit_price, optional supply_date,
            supplier_id, user_id, notes
        user: Authenticated seller or admin

    Raises:
        ValidationError: malformed payload
        NotFoundError: product, supplier or user does not exist
        ForbiddenError: seller supplying someone else's product
    """
    patch = validate_payload(model=Supply, payload=payload, policy=SUPPLY_POLICY, partial=False)
    enforce_rules_supply(patch)

    def _op():
        product = _lock_product(patch["product_id"])
        _check_owner(product, user)
        _check_supplier(patch.get("supplier_id"))
        _check_user(patch.get("user_id"))

        supply = Supply(
            product_id=product.id,
            user_id=patch.get("user_id") or user.id,
            supplier_id=patch.get("supplier_id"),
            quantity=patch["quantity"],
            unit_price=patch["unit_price"],
            total_price=_total(patch["quantity"], patch["unit_price"]),
            supply_date=patch.get("supply_date") or utcnow().date(),
            status=SUPPLY_STATUS_DELIVERED,
            notes=patch.get("notes"),
        )
        db.session.add(supply)

        _apply_delta(product, supply.quantity)

        db.session.commit()
        return supply

    supply = run_with_retry(_op)
    current_app.logger.info(
        "Supply %s recorded: product=%s qty=%s", supply.id, supply.product_id, supply.quantity
    )
    return supply


def update_supply(supply_id: int, payload: dict, user: User) -> Supply:
    """
    Edit a supply. A quantity change applies the difference to stock.

    Raises:
        NotFoundError: supply does not exist
        ValidationError: attempt to move the supply to another product
        InsufficientStockError: shrinking below what is still on hand
    """
    patch = validate_payload(model=Supply, payload=payload, policy=SUPPLY_POLICY, partial=True)
    enforce_rules_supply(patch)

    def _op():
        supply = lock_for_update(db.session.query(Supply).filter_by(id=supply_id)).first()
        if not supply:
            raise NotFoundError("Supply not found")

        if "product_id" in patch and patch["product_id"] != supply.product_id:
            raise ValidationError("The product of an existing supply cannot be changed")

        product = _lock_product(supply.product_id)
        _check_owner(product, user)
        if "supplier_id" in patch:
            _check_supplier(patch["supplier_id"])
        if "user_id" in patch:
            _check_user(patch["user_id"])

        old_quantity = supply.quantity
        new_quantity = patch.get("quantity", old_quantity)

        _apply_delta(product, new_quantity - old_quantity)

        for key in ("user_id", "supplier_id", "unit_price", "notes"):
            if key in patch:
                setattr(supply, key, patch[key])
        if patch.get("supply_date") is not None:
            supply.supply_date = patch["supply_date"]
        supply.quantity = new_quantity
        supply.total_price = _total(supply.quantity, supply.unit_price)
        supply.status = SUPPLY_STATUS_DELIVERED

        db.session.commit()
        return supply

    return run_with_retry(_op)


def delete_supply(supply_id: int, user: User) -> int:
    """
    Delete a supply and take its units back out of stock.

    Returns:
        The number of units removed from stock

    Raises:
        NotFoundError: supply does not exist
        InsufficientStockError: some of the supplied units were already sold
    """
    def _op():
        supply = lock_for_update(db.session.query(Supply).filter_by(id=supply_id)).first()
        if not supply:
            raise NotFoundError("Supply not found")

        product = _lock_product(supply.product_id)
        _check_owner(product, user)

        removed = supply.quantity
        _apply_delta(product, -removed)

        db.session.delete(supply)
        db.session.commit()
        return removed

    removed = run_with_retry(_op)
    current_app.logger.info("Supply %s deleted: %s units removed", supply_id, removed)
    return removed


def list_supplies(*, owner_id: int | None = None) -> list[dict]:
    """Supplies newest first, optionally limited to one seller's products."""
    query = db.session.query(Supply).join(Product, Supply.product_id == Product.id)
    if owner_id is not None:
        query = query.filter(Product.owner_id == owner_id)

    results = []
    for supply in query.order_by(Supply.supply_date.desc(), Supply.id.desc()).all():
        item = supply.to_dict()
        item["user_name"] = supply.user.full_name if supply.user else None
        results.append(item)
    return results


def get_supply(supply_id: int) -> Supply:
    supply = db.session.get(Supply, supply_id)
    if not supply:
        raise NotFoundError("Supply not found")
    return supply


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()


def create_supplier(payload: dict) -> Supplier:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        if db.session.query(Supplier).filter_by(name=name).first():
            raise ConflictError("A supplier with this name already exists")
        supplier = Supplier(
            name=name,
            contact_name=payload.get("contact_name"),
            email=payload.get("email"),
            phone=payload.get("phone"),
            address=payload.get("address"),
        )
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return run_with_retry(_op)
