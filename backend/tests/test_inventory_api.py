"""
HTTP contract tests for products, stock, supplies and sales.

Verifies:
- Status codes and payload shapes of the inventory endpoints
- French wire names on supplies and sales
- Role checks (buyers cannot write catalog or supplies)
"""

from datetime import date

import pytest

from conftest import headers_for, make_product
from videgrenier.models import Product, Review, Sale, StockRecord
from videgrenier.services import sales_service
from videgrenier.time_utils import utcnow


# =============================================================================
# UNAUTHENTICATED ACCESS
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("GET", "/api/stock"),
            ("GET", "/api/supplies"),
            ("POST", "/api/supplies"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("POST", "/api/sales/bulk"),
            ("DELETE", "/api/sales/1"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/sales", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_blocked_account_gets_403(self, client, db_session, seller):
        headers = headers_for(seller)
        seller.is_blocked = True
        db_session.commit()

        resp = client.get("/api/sales", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "ACCOUNT_BLOCKED"


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductsApi:

    def test_create_list_get(self, client, db_session, seller, seller_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Radio", "category": "Electronique", "price": "7500", "quantity": 3},
            headers=seller_headers,
        )
        assert resp.status_code == 201
        created = resp.get_json()
        assert created["owner_id"] == seller.id
        assert created["price"] == "7500.00"
        assert created["quantity"] == 3
        assert created["creator_name"] == seller.full_name

        record = db_session.query(StockRecord).filter_by(product_id=created["id"]).one()
        assert record.opening_quantity == 3

        listed = client.get(f"/api/products?userId={seller.id}").get_json()
        assert [p["id"] for p in listed] == [created["id"]]

        resp = client.get(f"/api/products/{created['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "Radio"

    def test_huge_price_400(self, client, db_session, seller_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Radio", "category": "Electronique", "price": "1e30", "quantity": 1},
            headers=seller_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(Product).count() == 0

    def test_buyer_cannot_create(self, client, db_session, buyer_headers):
        resp = client.post("/api/products", json={"name": "X", "price": 1}, headers=buyer_headers)
        assert resp.status_code == 403

    def test_quantity_not_editable(self, client, db_session, product, seller_headers):
        resp = client.put(f"/api/products/{product.id}", json={"quantity": 99}, headers=seller_headers)
        assert resp.status_code == 400

        resp = client.put(f"/api/products/{product.id}", json={"price": "650"}, headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["price"] == "650.00"
        assert resp.get_json()["quantity"] == 10

    def test_other_seller_cannot_edit(self, client, db_session, product, other_seller):
        resp = client.put(f"/api/products/{product.id}", json={"name": "Mine now"}, headers=headers_for(other_seller))
        assert resp.status_code == 403

    def test_unknown_product_404(self, client, db_session):
        assert client.get("/api/products/9999").status_code == 404

    def test_delete_reports_stock_records(self, client, db_session, product, seller_headers):
        resp = client.delete(f"/api/products/{product.id}", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["deletedStockRecords"] == 1

    def test_delete_blocked_lists_dependencies(self, client, db_session, product, seller_headers):
        db_session.add(Review(
            product_id=product.id, customer_name="Eve", customer_email="eve@x.cm", rating=4,
        ))
        db_session.commit()

        resp = client.delete(f"/api/products/{product.id}", headers=seller_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["reason"] == "PRODUCT_HAS_DEPENDENCIES"
        assert body["dependencies"] == [{"type": "reviews", "count": 1}]
        assert db_session.get(Product, product.id) is not None


# =============================================================================
# STOCK
# =============================================================================


class TestStockApi:

    def test_seller_sees_only_own_records(self, client, db_session, seller, other_seller, seller_headers):
        mine = make_product(db_session, seller, name="Mine")
        make_product(db_session, other_seller, name="Theirs")

        rows = client.get(f"/api/stock?userId={other_seller.id}", headers=seller_headers).get_json()
        assert [r["product_id"] for r in rows] == [mine.id]

    def test_admin_filters_by_month(self, client, db_session, product, admin_headers):
        today = utcnow().date()
        rows = client.get(f"/api/stock?month={today.month}&year={today.year}", headers=admin_headers).get_json()
        assert len(rows) == 1
        assert rows[0]["stock_value"] == "5000.00"
        assert rows[0]["month"] == today.month

        rows = client.get("/api/stock?month=1&year=1999", headers=admin_headers).get_json()
        assert rows == []

    def test_bad_month_400(self, client, db_session, admin_headers):
        assert client.get("/api/stock?month=0&year=2024", headers=admin_headers).status_code == 400
        assert client.get("/api/stock?month=abc", headers=admin_headers).status_code == 400

    def test_year_out_of_range_400(self, client, db_session, admin_headers):
        assert client.get("/api/stock?month=1&year=0", headers=admin_headers).status_code == 400
        assert client.get("/api/stock?month=1&year=10000", headers=admin_headers).status_code == 400

    def test_buyer_forbidden(self, client, db_session, buyer_headers):
        assert client.get("/api/stock", headers=buyer_headers).status_code == 403


# =============================================================================
# SUPPLIES
# =============================================================================


class TestSuppliesApi:

    def test_create_with_wire_names(self, client, db_session, product, seller, seller_headers):
        resp = client.post(
            "/api/supplies",
            json={
                "id_produit": product.id,
                "id_user": seller.id,
                "quantite": 4,
                "prix_unitaire": "200",
                "date_approvisionnement": "2026-01-15",
                "notes": "Marché central",
            },
            headers=seller_headers,
        )
        assert resp.status_code == 201
        supply = resp.get_json()["supply"]
        assert supply["quantity"] == 4
        assert supply["total_price"] == "800.00"
        assert supply["supply_date"] == "2026-01-15"

        product_after = client.get(f"/api/products/{product.id}").get_json()
        assert product_after["quantity"] == 14

    def test_update_and_delete(self, client, db_session, product, seller_headers):
        supply_id = client.post(
            "/api/supplies",
            json={"id_produit": product.id, "quantite": 4, "prix_unitaire": "200"},
            headers=seller_headers,
        ).get_json()["supply"]["id"]

        resp = client.put(f"/api/supplies/{supply_id}", json={"quantite": 6}, headers=seller_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/products/{product.id}").get_json()["quantity"] == 16

        resp = client.delete(f"/api/supplies/{supply_id}", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["removed_quantity"] == 6
        assert client.get(f"/api/products/{product.id}").get_json()["quantity"] == 10

    def test_get_single_supply(self, client, db_session, product, other_seller, seller_headers):
        supply_id = client.post(
            "/api/supplies",
            json={"id_produit": product.id, "quantite": 2, "prix_unitaire": "100"},
            headers=seller_headers,
        ).get_json()["supply"]["id"]

        resp = client.get(f"/api/supplies/{supply_id}", headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product_name"] == product.name

        assert client.get(f"/api/supplies/{supply_id}", headers=headers_for(other_seller)).status_code == 403
        assert client.get("/api/supplies/999", headers=seller_headers).status_code == 404

    def test_missing_fields_400(self, client, db_session, seller_headers):
        resp = client.post("/api/supplies", json={"quantite": 4}, headers=seller_headers)
        assert resp.status_code == 400

    def test_unknown_product_404(self, client, db_session, seller_headers):
        resp = client.post(
            "/api/supplies",
            json={"id_produit": 999, "quantite": 1, "prix_unitaire": "1"},
            headers=seller_headers,
        )
        assert resp.status_code == 404

    def test_unknown_user_404_leaves_stock_alone(self, client, db_session, product, seller_headers):
        resp = client.post(
            "/api/supplies",
            json={"id_produit": product.id, "id_user": 99999, "quantite": 3, "prix_unitaire": "100"},
            headers=seller_headers,
        )
        assert resp.status_code == 404
        assert client.get(f"/api/products/{product.id}").get_json()["quantity"] == 10

    def test_update_to_unknown_user_404(self, client, db_session, product, seller_headers):
        supply_id = client.post(
            "/api/supplies",
            json={"id_produit": product.id, "quantite": 2, "prix_unitaire": "100"},
            headers=seller_headers,
        ).get_json()["supply"]["id"]

        resp = client.put(f"/api/supplies/{supply_id}", json={"id_user": 424242}, headers=seller_headers)
        assert resp.status_code == 404

    def test_huge_unit_price_400(self, client, db_session, product, seller_headers):
        for price in ("1e30", "1e12"):
            resp = client.post(
                "/api/supplies",
                json={"id_produit": product.id, "quantite": 1, "prix_unitaire": price},
                headers=seller_headers,
            )
            assert resp.status_code == 400
        assert client.get(f"/api/products/{product.id}").get_json()["quantity"] == 10

    def test_listing_is_scoped_to_seller(self, client, db_session, product, other_seller, seller_headers):
        client.post(
            "/api/supplies",
            json={"id_produit": product.id, "quantite": 1, "prix_unitaire": "1"},
            headers=seller_headers,
        )
        assert len(client.get("/api/supplies", headers=seller_headers).get_json()) == 1
        assert client.get("/api/supplies", headers=headers_for(other_seller)).get_json() == []

    def test_suppliers(self, client, db_session, seller_headers):
        resp = client.post("/api/supplies/suppliers", json={"name": "Grossiste Douala"}, headers=seller_headers)
        assert resp.status_code == 201
        resp = client.post("/api/supplies/suppliers", json={"name": "Grossiste Douala"}, headers=seller_headers)
        assert resp.status_code == 409

        names = [s["name"] for s in client.get("/api/supplies/suppliers", headers=seller_headers).get_json()]
        assert names == ["Grossiste Douala"]


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_single_sale(self, client, db_session, product, buyer_headers):
        resp = client.post(
            "/api/sales",
            json={"id_produit": product.id, "quantity": 2, "payment_method": "cash"},
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["quantity"] == 2
        assert sale["total_amount"] == "1000.00"
        assert client.get(f"/api/products/{product.id}").get_json()["quantity"] == 8

    def test_insufficient_stock_400_with_available(self, client, db_session, product, buyer_headers):
        resp = client.post(
            "/api/sales",
            json={"id_produit": product.id, "quantity": 50, "payment_method": "cash"},
            headers=buyer_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["available"] == 10

    def test_unknown_product_404(self, client, db_session, buyer_headers):
        resp = client.post(
            "/api/sales",
            json={"id_produit": 999, "quantity": 1, "payment_method": "cash"},
            headers=buyer_headers,
        )
        assert resp.status_code == 404

    def test_missing_fields_400(self, client, db_session, product, buyer_headers):
        resp = client.post("/api/sales", json={"id_produit": product.id}, headers=buyer_headers)
        assert resp.status_code == 400

    def test_bulk_partial_success_is_201(self, client, db_session, seller, buyer_headers):
        lamp = make_product(db_session, seller, name="Lampe", quantity=5)
        chair = make_product(db_session, seller, name="Chaise", quantity=1)

        resp = client.post(
            "/api/sales/bulk",
            json={
                "items": [{"id_produit": lamp.id, "quantity": 1}, {"id_produit": chair.id, "quantity": 2}],
                "payment_method": "mobile_money",
            },
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert len(body["sales"]) == 1
        assert body["errors"][0]["product_id"] == chair.id
        assert body["errors"][0]["available"] == 1

    def test_bulk_all_failed_is_400(self, client, db_session, product, buyer_headers):
        resp = client.post(
            "/api/sales/bulk",
            json={"items": [{"id_produit": product.id, "quantity": 99}], "payment_method": "cash"},
            headers=buyer_headers,
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "All sales failed"
        assert len(body["errors"]) == 1
        assert db_session.query(Sale).count() == 0

    def test_history_is_scoped_by_role(self, client, db_session, product, buyer, other_seller,
                                       buyer_headers, seller_headers, admin_headers):
        sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)

        assert len(client.get("/api/sales", headers=buyer_headers).get_json()) == 1
        assert len(client.get("/api/sales", headers=seller_headers).get_json()) == 1
        assert len(client.get("/api/sales", headers=admin_headers).get_json()) == 1
        assert client.get("/api/sales", headers=headers_for(other_seller)).get_json() == []

    def test_delete_sale(self, client, db_session, product, buyer, seller_headers, buyer_headers):
        sale = sales_service.create_sale(product_id=product.id, quantity=3, payment_method="cash", buyer=buyer)

        assert client.delete(f"/api/sales/{sale.id}", headers=buyer_headers).status_code == 403

        resp = client.delete(f"/api/sales/{sale.id}", headers=seller_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["restored_quantity"] == 3
        assert body["product_name"] == product.name

        assert client.delete(f"/api/sales/{sale.id}", headers=seller_headers).status_code == 404

    def test_delete_sale_of_other_seller_403(self, client, db_session, product, buyer, other_seller):
        sale = sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)
        resp = client.delete(f"/api/sales/{sale.id}", headers=headers_for(other_seller))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "INSUFFICIENT_PERMISSIONS"

    def test_update_status(self, client, db_session, product, buyer, seller_headers):
        sale = sales_service.create_sale(product_id=product.id, quantity=1, payment_method="cash", buyer=buyer)

        resp = client.put(f"/api/sales/{sale.id}/status", json={"status": "refunded"}, headers=seller_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "refunded"

        resp = client.put(f"/api/sales/{sale.id}/status", json={"status": "lost"}, headers=seller_headers)
        assert resp.status_code == 400

    def test_sale_made_last_month_is_reversed_in_that_month(self, client, db_session, product, buyer,
                                                             seller_headers, monkeypatch):
        monkeypatch.setattr(sales_service, "utcnow", lambda: utcnow().replace(year=2019, month=11, day=3))
        sale = sales_service.create_sale(product_id=product.id, quantity=2, payment_method="cash", buyer=buyer)
        monkeypatch.undo()

        assert client.delete(f"/api/sales/{sale.id}", headers=seller_headers).status_code == 200

        november = db_session.query(StockRecord).filter_by(
            product_id=product.id, period_start=date(2019, 11, 1)
        ).one()
        assert november.sold_quantity == 0
        assert november.current_quantity == 10
