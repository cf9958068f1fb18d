# Overview: Service-layer operations for the monthly stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, StockRecord
from ..errors import NotFoundError, ValidationError
from videgrenier.time_utils import month_start, utcnow
from .concurrency import lock_for_update
"""
Stock Ledger Invariants (authoritative)

Record model:
- One StockRecord per (product, calendar month); period_start is the 1st of the month.
- UniqueConstraint(product_id, period_start) makes get-or-create race-safe.
- stock_value == current_quantity * unit_price after every write (revalue()).

Carry-forward:
- A month's record is created lazily by the first sale or supply touching the product.
- opening_quantity = current_quantity of the latest earlier record, or
  Product.quantity when the product has no history at all.
- Callers resolve the record BEFORE changing Product.quantity, so the
  "no history" opening balance is the pre-operation on-hand quantity.

Writers:
- Only this module, sales_service, supply_service and product creation write stock_records.
- Every write happens inside the caller's transaction; nothing here commits.
"""


def valuation(quantity: int, unit_price) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(Decimal("0.01"))


def revalue(record: StockRecord, unit_price) -> None:
    """Re-derive stock_value from current_quantity at the given unit price."""
    record.unit_price = Decimal(unit_price)
    record.stock_value = valuation(record.current_quantity, unit_price)


def find_record_for_month(product_id: int, day: date, *, lock: bool = False) -> StockRecord | None:
    """Ledger entry for the calendar month containing `day`, or None."""
    query = db.session.query(StockRecord).filter(
        StockRecord.product_id == product_id,
        StockRecord.period_start == month_start(day),
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def _opening_quantity(product: Product, period_start: date) -> int:
    previous = (
        db.session.query(StockRecord)
        .filter(
            StockRecord.product_id == product.id,
            StockRecord.period_start < period_start,
        )
        .order_by(StockRecord.period_start.desc())
        .first()
    )
    if previous is not None:
        return previous.current_quantity
    return product.quantity


def get_current_month_record(product: Product, *, today: date | None = None) -> StockRecord:
    """
    Return the product's ledger entry for the current month, creating it if absent.

    The insert runs inside a SAVEPOINT. If a concurrent request created the
    same (product, month) row first, the unique constraint rejects ours, the
    savepoint is rolled back, and the winning row is returned instead.

    Args:
        product: Product already loaded (and locked) by the caller
        today: Override for "now" (UTC date)

    Returns:
        The StockRecord for the month containing `today`
    """
    if product is None:
        raise NotFoundError("Product not found")

    day = today or utcnow().date()
    period_start = month_start(day)

    record = find_record_for_month(product.id, period_start, lock=True)
    if record is not None:
        return record

    opening = _opening_quantity(product, period_start)
    record = StockRecord(
        product_id=product.id,
        period_start=period_start,
        opening_quantity=opening,
        sold_quantity=0,
        supplied_quantity=0,
        current_quantity=opening,
    )
    revalue(record, product.price)

    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError:
        existing = find_record_for_month(product.id, period_start, lock=True)
        if existing is None:
            raise
        return existing

    return record


def apply_sale(record: StockRecord, quantity: int, unit_price) -> None:
    record.sold_quantity += quantity
    record.current_quantity -= quantity
    revalue(record, unit_price)


def reverse_sale(record: StockRecord, quantity: int) -> None:
    """Undo a sale in its month. The record keeps its own unit price."""
    # Sold quantity may have been reset by hand; never go below zero
    record.sold_quantity = max(0, record.sold_quantity - quantity)
    record.current_quantity += quantity
    record.stock_value = valuation(record.current_quantity, record.unit_price)


def apply_supply(record: StockRecord, delta: int, unit_price) -> None:
    """Apply a supply quantity change (delta may be negative); floors at zero."""
    record.supplied_quantity = max(0, record.supplied_quantity + delta)
    record.current_quantity = max(0, record.current_quantity + delta)
    revalue(record, unit_price)


def list_stock_records(
    *,
    month: int | None = None,
    year: int | None = None,
    owner_id: int | None = None,
) -> list[dict]:
    """
    Read-only ledger query, newest month first then product name.

    month and year only filter when both are given.
    """
    query = db.session.query(StockRecord, Product).join(Product, StockRecord.product_id == Product.id)

    if month is not None and year is not None:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        if not 1 <= year <= 9999:
            raise ValidationError("year must be between 1 and 9999")
        query = query.filter(StockRecord.period_start == date(year, month, 1))

    if owner_id is not None:
        query = query.filter(Product.owner_id == owner_id)

    rows = query.order_by(StockRecord.period_start.desc(), Product.name.asc()).all()

    results = []
    for record, product in rows:
        item = record.to_dict()
        item["product_name"] = product.name
        item["owner_id"] = product.owner_id
        results.append(item)
    return results
