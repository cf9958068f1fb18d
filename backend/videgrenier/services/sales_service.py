"""
Sales Service - checkout and compensating deletion

Every sale decrements Product.quantity and moves the current month's
StockRecord in the same transaction as the Sale insert. Deleting a sale is the
compensating action: it puts the units back on the product and reverses the
ledger entry of the month the sale was made in.

Transactions:
- create_sale: all-or-nothing.
- create_bulk_sale: one transaction, one SAVEPOINT per item. Failed items are
  reported and skipped; if none succeed nothing is committed.
- delete_sale: all-or-nothing.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, Sale, User
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUSES
from ..errors import (
    AllItemsFailedError,
    ApiError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..validation import coerce_int, positive_quantity
from videgrenier.time_utils import utcnow
from . import stock_service
from .concurrency import lock_for_update, run_with_retry

_ORDER_ALPHABET = string.digits + string.ascii_uppercase


@dataclass
class SaleDeletion:
    sale_id: int
    order_id: str
    restored_quantity: int
    product_name: str | None = None
    warning: str | None = None


def generate_order_id() -> str:
    """ORD-<epoch ms>-<9 random base36 chars>."""
    suffix = "".join(secrets.choice(_ORDER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _can_manage(sale: Sale, user: User) -> bool:
    return user.is_admin or (sale.seller_id is not None and sale.seller_id == user.id)


def _sell_locked(product_id: int, quantity: int, payment_method: str, buyer: User) -> Sale:
    """
    Record one sale line. Caller owns the transaction.

    The ledger entry is resolved before the product is decremented so a
    first-of-month entry opens at the pre-sale quantity.
    """
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    if product.quantity < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Only {product.quantity} items available.",
            available=product.quantity,
            product_id=product.id,
        )

    now = utcnow()
    record = stock_service.get_current_month_record(product, today=now.date())

    unit_price = Decimal(product.price)
    sale = Sale(
        order_id=generate_order_id(),
        product_id=product.id,
        seller_id=product.owner_id,
        buyer_id=buyer.id,
        buyer_name=buyer.full_name,
        buyer_email=buyer.email,
        quantity=quantity,
        unit_price=unit_price,
        total_amount=(unit_price * quantity).quantize(Decimal("0.01")),
        status=SALE_STATUS_COMPLETED,
        payment_method=payment_method,
        created_at=now,
    )
    db.session.add(sale)

    product.quantity -= quantity
    stock_service.apply_sale(record, quantity, unit_price)

    db.session.flush()
    return sale


def create_sale(*, product_id: int, quantity, payment_method: str, buyer: User) -> Sale:
    """
    Sell `quantity` units of a product to `buyer`.

    Raises:
        ValidationError: missing payment method or non-positive quantity
        NotFoundError: product does not exist
        InsufficientStockError: not enough units on hand (carries `available`)
    """
    qty = positive_quantity("quantity", quantity)
    if not payment_method:
        raise ValidationError("payment_method is required")

    def _op():
        sale = _sell_locked(product_id, qty, payment_method, buyer)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Sale %s created: product=%s qty=%s", sale.order_id, product_id, qty)
    return sale


def create_bulk_sale(*, items: list[dict], payment_method: str, buyer: User) -> tuple[list[Sale], list[dict]]:
    """
    Cart checkout with per-item failure isolation.

    Each item is {"product_id": int, "quantity": int}. Items that fail with an
    expected error are rolled back to their savepoint and reported.

    Returns:
        (created sales, per-item errors)

    Raises:
        ValidationError: empty cart or missing payment method
        AllItemsFailedError: no item could be sold (nothing committed)
    """
    if not items:
        raise ValidationError("items must be a non-empty list")
    if not payment_method:
        raise ValidationError("payment_method is required")

    def _op():
        created: list[Sale] = []
        errors: list[dict] = []

        for item in items:
            product_id = item.get("product_id")
            try:
                if product_id is None:
                    raise ValidationError("product_id is required")
                product_id = coerce_int("product_id", product_id)
                qty = positive_quantity("quantity", item.get("quantity"))
                with db.session.begin_nested():
                    sale = _sell_locked(product_id, qty, payment_method, buyer)
                created.append(sale)
            except ApiError as exc:
                error = {"product_id": product_id, "error": exc.message, "reason": exc.reason}
                if isinstance(exc, InsufficientStockError):
                    error["available"] = exc.available
                errors.append(error)

        if not created:
            db.session.rollback()
            raise AllItemsFailedError(errors)

        db.session.commit()
        return created, errors

    created, errors = run_with_retry(_op)
    current_app.logger.info(
        "Bulk sale: %s created, %s failed (buyer=%s)", len(created), len(errors), buyer.id
    )
    return created, errors


def delete_sale(sale_id: int, requester: User) -> SaleDeletion:
    """
    Delete a sale and restock its product.

    The ledger entry adjusted is the one for the month the sale was made in,
    not the current month. Missing product or ledger entry are tolerated and
    reported as warnings.

    Raises:
        NotFoundError: sale does not exist
        ForbiddenError: requester is neither admin nor the sale's seller
    """
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")

        if not _can_manage(sale, requester):
            raise ForbiddenError(
                "Access denied. Only admins or the seller who created this sale can delete it.",
                reason="INSUFFICIENT_PERMISSIONS",
            )

        result = SaleDeletion(sale_id=sale.id, order_id=sale.order_id, restored_quantity=sale.quantity)

        product = None
        if sale.product_id is not None:
            product = lock_for_update(db.session.query(Product).filter_by(id=sale.product_id)).first()

        if product is None:
            current_app.logger.warning(
                "Sale %s deleted but its product no longer exists; stock not restored", sale.order_id
            )
            result.restored_quantity = 0
            result.warning = "PRODUCT_NOT_FOUND"
            db.session.delete(sale)
            db.session.commit()
            return result

        record = stock_service.find_record_for_month(product.id, sale.created_at.date(), lock=True)
        if record is None:
            current_app.logger.warning(
                "No stock record for product %s in %s; ledger not adjusted for sale %s",
                product.id,
                sale.created_at.strftime("%Y-%m"),
                sale.order_id,
            )
            result.warning = "STOCK_RECORD_NOT_FOUND"
        else:
            stock_service.reverse_sale(record, sale.quantity)

        product.quantity += sale.quantity
        result.product_name = product.name

        db.session.delete(sale)
        db.session.commit()
        return result

    return run_with_retry(_op)


def update_sale_status(sale_id: int, status: str, requester: User) -> Sale:
    """Set a sale's status (completed, pending, refunded). Stock is not touched."""
    if status not in SALE_STATUSES:
        raise ValidationError("Invalid status", details={"allowed": list(SALE_STATUSES)})

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if not _can_manage(sale, requester):
            raise ForbiddenError("Only admins or the seller of this sale can change its status")
        sale.status = status
        db.session.commit()
        return sale

    return run_with_retry(_op)


def mark_order_status(order_id: str, status: str) -> int:
    """
    Set the status of every sale carrying `order_id` (payment callbacks).

    Returns:
        Number of sales updated
    """
    if status not in SALE_STATUSES:
        raise ValidationError("Invalid status")

    def _op():
        sales = db.session.query(Sale).filter_by(order_id=order_id).all()
        for sale in sales:
            sale.status = status
        db.session.commit()
        return len(sales)

    return run_with_retry(_op)


def _sale_view(sale: Sale) -> dict:
    data = sale.to_dict()
    data["product_photo"] = sale.product.photo if sale.product else None
    data["seller_name"] = sale.seller.full_name if sale.seller else None
    return data


def list_sales(*, seller_id: int | None = None, buyer_id: int | None = None) -> list[dict]:
    query = db.session.query(Sale)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)
    if buyer_id is not None:
        query = query.filter(Sale.buyer_id == buyer_id)
    return [_sale_view(s) for s in query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()]


def get_sale(sale_id: int, requester: User) -> dict:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    if not (_can_manage(sale, requester) or sale.buyer_id == requester.id):
        raise ForbiddenError("Not allowed to view this sale")
    return _sale_view(sale)
