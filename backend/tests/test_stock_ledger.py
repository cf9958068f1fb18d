"""
Monthly stock ledger tests.

Verifies:
- stock_value == current_quantity * unit_price after every write
- Sales and supplies move Product.quantity and the month's record together
- Deleting a sale or supply exactly undoes it
- Month records carry the previous closing quantity forward
- Get-or-create of a month record survives a concurrent insert
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import make_product
from videgrenier.errors import (
    AllItemsFailedError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ProductInUseError,
    ValidationError,
)
from videgrenier.extensions import db
from videgrenier.models import Product, Sale, StockRecord, Supply
from videgrenier.services import products_service, sales_service, stock_service, supply_service
from videgrenier.time_utils import month_start, utcnow


def current_record(product) -> StockRecord:
    return stock_service.find_record_for_month(product.id, utcnow().date())


def assert_valued(record: StockRecord):
    assert record.stock_value == record.current_quantity * record.unit_price


# =============================================================================
# MONTH RECORD RESOLUTION
# =============================================================================


class TestMonthRecordResolution:

    def test_new_product_opens_month_at_initial_quantity(self, db_session, product):
        record = current_record(product)

        assert record.period_start == month_start(utcnow().date())
        assert record.opening_quantity == 10
        assert record.current_quantity == 10
        assert record.sold_quantity == 0
        assert record.supplied_quantity == 0
        assert record.stock_value == Decimal("5000.00")
        assert_valued(record)

    def test_resolving_twice_returns_same_row(self, db_session, product):
        first = stock_service.get_current_month_record(product)
        second = stock_service.get_current_month_record(product)
        assert first.id == second.id
        assert db_session.query(StockRecord).filter_by(product_id=product.id).count() == 1

    def test_next_month_carries_closing_quantity_forward(self, db_session, seller):
        product = make_product(db_session, seller, quantity=10)
        sales_service.create_sale(product_id=product.id, quantity=3, payment_method="cash", buyer=seller)

        this_month = month_start(utcnow().date())
        next_month = date(this_month.year + (this_month.month == 12), this_month.month % 12 + 1, 1)

        record = stock_service.get_current_month_record(product, today=next_month)
        db_session.commit()

        assert record.period_start == next_month
        assert record.opening_quantity == 7
        assert record.current_quantity == 7
        assert record.sold_quantity == 0
        assert_valued(record)

    def test_product_without_history_opens_at_on_hand_quantity(self, db_session, seller):
        product = Product(owner_id=seller.id, name="Vase", price=Decimal("250.00"), quantity=4)
        db_session.add(product)
        db_session.commit()

        record = stock_service.get_current_month_record(product, today=date(2024, 5, 20))
        db_session.commit()

        assert record.period_start == date(2024, 5, 1)
        assert record.opening_quantity == 4
        assert record.stock_value == Decimal("1000.00")

    def test_concurrent_insert_returns_the_winning_row(self, db_session, product, monkeypatch):
        """Another request created this month's row after our lookup missed it."""
        existing = current_record(product)
        real_find = stock_service.find_record_for_month
        calls = []

        def stale_find(product_id, day, *, lock=False):
            calls.append(day)
            if len(calls) == 1:
                return None
            return real_find(product_id, day, lock=lock)

        monkeypatch.setattr(stock_service, "find_record_for_month", stale_find)

        record = stock_service.get_current_month_record(product)
        db_session.commit()

        assert len(calls) == 2
        assert record.id == existing.id
        assert db_session.query(StockRecord).filter_by(product_id=product.id).count() == 1

    def test_missing_product_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.get_current_month_record(None)


# =============================================================================
# SALES
# =============================================================================


class TestSales:

    def test_sale_moves_product_and_ledger(self, db_session, seller, buyer):
        product = make_product(db_session, seller, price="1000.00", quantity=10)

        sale = sales_service.create_sale(product_id=product.id, quantity=2, payment_method="cash", buyer=buyer)

        assert sale.order_id.startswith("ORD-")
        assert sale.seller_id == seller.id
        assert sale.buyer_id == buyer.id
        assert sale.buyer_email == buyer.email
        assert sale.unit_price == Decimal("1000.00")
        assert sale.total_amount == Decimal("2000.00")
        assert sale.status == "completed"

        db_session.refresh(product)
        assert product.quantity == 8

        record = current_record(product)
        assert record.sold_quantity == 2
        assert record.current_quantity == 8
        assert record.stock_value == Decimal("8000.00")
        assert_valued(record)

    def test_insufficient_stock_changes_nothing(self, db_session, product, buyer):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(product_id=product.id, quantity=11, payment_method="cash", buyer=buyer)

        assert exc.value.available == 10
        assert db_session.query(Sale).count() == 0
        db_session.refresh(product)
        assert product.quantity == 10
        assert current_record(product).sold_quantity == 0

    def test_selling_entire_stock_is_allowed(self, db_session, product, buyer):
        sales_service.create_sale(product_id=product.id, quantity=10, payment_method="cash", buyer=buyer)
        db_session.refresh(product)
        assert product.quantity == 0
        assert current_record(product).stock_value == Decimal("0.00")

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5])
    def test_non_positive_or_malformed_quantity_rejected(self, db_session, product, buyer, quantity):
        with pytest.raises(ValidationError):
            sales_service.create_sale(product_id=product.id, quantity=quantity, payment_method="cash", buyer=buyer)

    def test_unknown_product_is_not_found(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(product_id=999, quantity=1, payment_method="cash", buyer=buyer)

    def test_order_ids_are_unique(self):
        ids = {sales_service.generate_order_id() for _ in range(200)}
        assert len(ids) == 200
        assert all(len(i.split("-")[2]) == 9 for i in ids)


class TestBulkSales:

    def test_partial_success_commits_good_items_only(self, db_session, seller, buyer):
        lamp = make_product(db_session, seller, name="Lampe", quantity=5)
        chair = make_product(db_session, seller, name="Chaise", quantity=1)

        created, errors = sales_service.create_bulk_sale(
            items=[
                {"product_id": lamp.id, "quantity": 2},
                {"product_id": chair.id, "quantity": 3},
                {"product_id": 9999, "quantity": 1},
            ],
            payment_method="mobile_money",
            buyer=buyer,
        )

        assert len(created) == 1
        assert created[0].product_id == lamp.id
        assert [e["product_id"] for e in errors] == [chair.id, 9999]
        assert errors[0]["reason"] == "INSUFFICIENT_STOCK"
        assert errors[0]["available"] == 1
        assert errors[1]["reason"] == "NOT_FOUND"

        db_session.refresh(lamp)
        db_session.refresh(chair)
        assert lamp.quantity == 3
        assert chair.quantity == 1
        assert current_record(chair).sold_quantity == 0
        assert db_session.query(Sale).count() == 1

    def test_failure_between_successes_keeps_both_neighbours(self, db_session, seller, buyer):
        lamp = make_product(db_session, seller, name="Lampe", quantity=5)
        chair = make_product(db_session, seller, name="Chaise", quantity=1)
        table = make_product(db_session, seller, name="Table", quantity=4)

        created, errors = sales_service.create_bulk_sale(
            items=[
                {"product_id": lamp.id, "quantity": 1},
                {"product_id": chair.id, "quantity": 2},
                {"product_id": table.id, "quantity": 3},
            ],
            payment_method="cash",
            buyer=buyer,
        )

        assert [s.product_id for s in created] == [lamp.id, table.id]
        assert len(errors) == 1
        assert errors[0]["product_id"] == chair.id
        assert errors[0]["available"] == 1

        for item in (lamp, chair, table):
            db_session.refresh(item)
        assert (lamp.quantity, chair.quantity, table.quantity) == (4, 1, 1)
        assert current_record(lamp).sold_quantity == 1
        assert current_record(chair).sold_quantity == 0
        assert current_record(table).sold_quantity == 3

    def test_all_items_failing_commits_nothing(self, db_session, product, buyer):
        with pytest.raises(AllItemsFailedError) as exc:
            sales_service.create_bulk_sale(
                items=[{"product_id": product.id, "quantity": 50}, {"product_id": 424242, "quantity": 1}],
                payment_method="cash",
                buyer=buyer,
            )

        assert len(exc.value.errors) == 2
        assert db_session.query(Sale).count() == 0
        db_session.refresh(product)
        assert product.quantity == 10

    def test_same_product_twice_sees_first_decrement(self, db_session, product, buyer):
        created, errors = sales_service.create_bulk_sale(
            items=[{"product_id": product.id, "quantity": 6}, {"product_id": product.id, "quantity": 6}],
            payment_method="cash",
            buyer=buyer,
        )
        assert len(created) == 1
        assert errors[0]["available"] == 4

    def test_empty_cart_rejected(self, db_session, buyer):
        with pytest.raises(ValidationError):
            sales_service.create_bulk_sale(items=[], payment_method="cash", buyer=buyer)


class TestSaleDeletion:

    def test_delete_restores_product_and_ledger(self, db_session, seller, buyer):
        product = make_product(db_session, seller, price="1000.00", quantity=10)
        before = current_record(product)
        snapshot = (before.opening_quantity, before.sold_quantity, before.current_quantity, before.stock_value)

        sale = sales_service.create_sale(product_id=product.id, quantity=4, payment_method="cash", buyer=buyer)
        result = sales_service.delete_sale(sale.id, seller)

        assert result.restored_quantity == 4
        assert result.product_name == product.name
        assert result.warning is None

        db_session.refresh(product)
        assert product.quantity == 10
        after = current_record(product)
        assert (after.opening_quantity, after.sold_quantity, after.current_quantity, after.stock_value) == snapshot
        assert db_session.query(Sale).count() == 0

    def test_delete_after_product_removed_warns(self, db_session, product, buyer, seller):
        sale = sales_service.create_sale(product_id=product.id, quantity=2, payment_method="cash", buyer=buyer)
        sale_id = sale.id

        db_session.execute(Product.__table__.delete().where(Product.__table__.c.id == product.id))
        db_session.commit()
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).product_id is None

        result = sales_service.delete_sale(sale_id, seller)

        assert result.warning == "PRODUCT_NOT_FOUND"
        assert result.restored_quantity == 0
        assert db_session.get(Sale, sale_id) is None

    def test_delete_keeps_the_records_current_price(self, db_session, seller, buyer):
        product = make_product(db_session, seller, price="500.00", quantity=10)
        first = sales_service.create_sale(product_id=product.id, quantity=2, payment_method="cash", buyer=buyer)

        products_service.update_product(product.id, {"price": "800"}, seller)
        sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)
        assert current_record(product).unit_price == Decimal("800.00")

        sales_service.delete_sale(first.id, seller)

        record = current_record(product)
        assert record.current_quantity == 9
        assert record.unit_price == Decimal("800.00")
        assert record.stock_value == Decimal("7200.00")
        assert_valued(record)

    def test_delete_adjusts_the_month_of_the_sale(self, db_session, product, buyer, seller, monkeypatch):
        monkeypatch.setattr(sales_service, "utcnow", lambda: datetime(2020, 3, 10, 9, 30))
        sale = sales_service.create_sale(product_id=product.id, quantity=2, payment_method="cash", buyer=buyer)
        monkeypatch.undo()

        march = stock_service.find_record_for_month(product.id, date(2020, 3, 1))
        assert march.sold_quantity == 2
        assert current_record(product).sold_quantity == 0

        sales_service.delete_sale(sale.id, seller)

        march = stock_service.find_record_for_month(product.id, date(2020, 3, 1))
        assert march.sold_quantity == 0
        assert march.current_quantity == march.opening_quantity
        assert current_record(product).current_quantity == 10

    def test_missing_month_record_still_restores_product(self, db_session, product, buyer, seller):
        sale = sales_service.create_sale(product_id=product.id, quantity=3, payment_method="cash", buyer=buyer)
        db_session.query(StockRecord).filter_by(product_id=product.id).delete()
        db_session.commit()

        result = sales_service.delete_sale(sale.id, seller)

        assert result.warning == "STOCK_RECORD_NOT_FOUND"
        db_session.refresh(product)
        assert product.quantity == 10

    def test_sold_quantity_never_goes_negative(self, db_session, product, buyer, admin):
        sale = sales_service.create_sale(product_id=product.id, quantity=3, payment_method="cash", buyer=buyer)
        record = current_record(product)
        record.sold_quantity = 0
        db_session.commit()

        sales_service.delete_sale(sale.id, admin)

        record = current_record(product)
        assert record.sold_quantity == 0
        assert record.current_quantity == 10
        assert_valued(record)

    def test_other_seller_cannot_delete(self, db_session, product, buyer, other_seller):
        sale = sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)
        with pytest.raises(ForbiddenError) as exc:
            sales_service.delete_sale(sale.id, other_seller)
        assert exc.value.reason == "INSUFFICIENT_PERMISSIONS"
        assert db_session.query(Sale).count() == 1

    def test_unknown_sale_is_not_found(self, db_session, admin):
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(12345, admin)


# =============================================================================
# SUPPLIES
# =============================================================================


class TestSupplies:

    def test_supply_adds_to_product_and_ledger(self, db_session, product, seller):
        supply = supply_service.create_supply(
            {"product_id": product.id, "quantity": 5, "unit_price": "300"},
            seller,
        )

        assert supply.total_price == Decimal("1500.00")
        assert supply.status == "delivered"
        assert supply.user_id == seller.id
        assert supply.supply_date == utcnow().date()

        db_session.refresh(product)
        assert product.quantity == 15
        record = current_record(product)
        assert record.supplied_quantity == 5
        assert record.current_quantity == 15
        # Ledger is valued at the selling price, not the purchase price
        assert record.unit_price == Decimal("500.00")
        assert record.stock_value == Decimal("7500.00")

    def test_supply_then_delete_restores_state(self, db_session, product, seller):
        supply = supply_service.create_supply(
            {"product_id": product.id, "quantity": 5, "unit_price": "300"},
            seller,
        )
        removed = supply_service.delete_supply(supply.id, seller)

        assert removed == 5
        db_session.refresh(product)
        assert product.quantity == 10
        record = current_record(product)
        assert record.supplied_quantity == 0
        assert record.current_quantity == 10
        assert_valued(record)
        assert db_session.query(Supply).count() == 0

    def test_update_applies_quantity_delta(self, db_session, product, seller):
        supply = supply_service.create_supply(
            {"product_id": product.id, "quantity": 5, "unit_price": "300"},
            seller,
        )
        updated = supply_service.update_supply(supply.id, {"quantity": 2, "unit_price": "250"}, seller)

        assert updated.quantity == 2
        assert updated.total_price == Decimal("500.00")
        db_session.refresh(product)
        assert product.quantity == 12
        assert current_record(product).supplied_quantity == 2

    def test_cannot_remove_units_already_sold(self, db_session, product, seller, buyer):
        supply = supply_service.create_supply(
            {"product_id": product.id, "quantity": 5, "unit_price": "300"},
            seller,
        )
        sales_service.create_sale(product_id=product.id, quantity=13, payment_method="cash", buyer=buyer)

        with pytest.raises(InsufficientStockError) as exc:
            supply_service.delete_supply(supply.id, seller)
        assert exc.value.available == 2

        with pytest.raises(InsufficientStockError):
            supply_service.update_supply(supply.id, {"quantity": 1}, seller)

        db_session.refresh(product)
        assert product.quantity == 2
        assert db_session.query(Supply).count() == 1

    def test_product_of_supply_cannot_change(self, db_session, product, seller):
        other = make_product(db_session, seller, name="Autre")
        supply = supply_service.create_supply(
            {"product_id": product.id, "quantity": 1, "unit_price": "10"},
            seller,
        )
        with pytest.raises(ValidationError):
            supply_service.update_supply(supply.id, {"product_id": other.id}, seller)

    def test_seller_cannot_supply_foreign_product(self, db_session, product, other_seller):
        with pytest.raises(ForbiddenError):
            supply_service.create_supply(
                {"product_id": product.id, "quantity": 1, "unit_price": "10"},
                other_seller,
            )

    @pytest.mark.parametrize(
        "payload",
        [
            {"quantity": 1, "unit_price": "10"},
            {"product_id": 1, "quantity": 0, "unit_price": "10"},
            {"product_id": 1, "quantity": 1, "unit_price": "-1"},
            {"product_id": 1, "quantity": 1, "unit_price": "10", "status": "lost"},
        ],
    )
    def test_invalid_payloads_rejected(self, db_session, seller, payload):
        with pytest.raises(ValidationError):
            supply_service.create_supply(payload, seller)

    def test_apply_supply_floors_at_zero(self, db_session, product):
        record = current_record(product)
        stock_service.apply_supply(record, -50, Decimal("500"))
        assert record.supplied_quantity == 0
        assert record.current_quantity == 0
        assert record.stock_value == Decimal("0.00")
        db_session.rollback()


# =============================================================================
# PRODUCT DELETION GUARD
# =============================================================================


class TestProductDeletion:

    def test_product_with_history_cannot_be_deleted(self, db_session, product, buyer, seller):
        sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)
        supply_service.create_supply({"product_id": product.id, "quantity": 2, "unit_price": "1"}, seller)

        with pytest.raises(ProductInUseError) as exc:
            products_service.delete_product(product.id, seller)

        assert exc.value.status_code == 400
        assert {"type": "sales", "count": 1} in exc.value.dependencies
        assert {"type": "supplies", "count": 1} in exc.value.dependencies
        assert db.session.get(Product, product.id) is not None

    def test_deleting_product_removes_its_stock_records(self, db_session, product, seller):
        stock_service.get_current_month_record(product, today=date(2021, 6, 1))
        db_session.commit()
        product_id = product.id

        result = products_service.delete_product(product_id, seller)

        assert result.deleted_stock_records == 2
        assert db.session.get(Product, product_id) is None
        assert db_session.query(StockRecord).filter_by(product_id=product_id).count() == 0

    def test_other_seller_cannot_delete(self, db_session, product, other_seller):
        with pytest.raises(ForbiddenError):
            products_service.delete_product(product.id, other_seller)


# =============================================================================
# LEDGER QUERY
# =============================================================================


class TestStockQuery:

    def test_filters_by_month_and_owner(self, db_session, seller, other_seller):
        mine = make_product(db_session, seller, name="Mine")
        theirs = make_product(db_session, other_seller, name="Theirs")
        stock_service.get_current_month_record(mine, today=date(2022, 1, 5))
        db_session.commit()

        all_rows = stock_service.list_stock_records()
        assert len(all_rows) == 3

        january = stock_service.list_stock_records(month=1, year=2022)
        assert [r["product_id"] for r in january] == [mine.id]
        assert january[0]["product_name"] == "Mine"

        only_theirs = stock_service.list_stock_records(owner_id=other_seller.id)
        assert {r["product_id"] for r in only_theirs} == {theirs.id}

    def test_month_alone_does_not_filter(self, db_session, product):
        assert len(stock_service.list_stock_records(month=1)) == 1

    def test_invalid_month_rejected(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.list_stock_records(month=13, year=2024)
