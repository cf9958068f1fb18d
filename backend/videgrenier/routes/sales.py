# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/videgrenier/routes/sales.py
"""Sales API routes: checkout, history, status and compensating deletion"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import sales_service
from ..decorators import require_auth, require_role
from ..validation import optional_int, pick


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Buy a single product.

    Body: {id_produit, quantity, payment_method}
    400 with `available` on insufficient stock, 404 if the product is gone.
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = pick(data, "id_produit", "product_id")
        if product_id is None or data.get("quantity") is None or not data.get("payment_method"):
            return jsonify({"error": "Missing required fields", "reason": "VALIDATION_ERROR"}), 400

        sale = sales_service.create_sale(
            product_id=optional_int("id_produit", product_id),
            quantity=data.get("quantity"),
            payment_method=data.get("payment_method"),
            buyer=g.current_user,
        )
        return jsonify({
            "message": "Sale created successfully and stock updated",
            "sale": sale.to_dict(),
        }), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/bulk")
@require_auth
def create_bulk_sale_route():
    """
    Cart checkout. Partial success is a 201 with an `errors` list;
    400 only if every item failed.
    """
    try:
        data = request.get_json(silent=True) or {}
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            return jsonify({"error": "items must be a non-empty list", "reason": "VALIDATION_ERROR"}), 400

        items = [
            {
                "product_id": pick(item, "id_produit", "product_id") if isinstance(item, dict) else None,
                "quantity": item.get("quantity") if isinstance(item, dict) else None,
            }
            for item in raw_items
        ]

        sales, errors = sales_service.create_bulk_sale(
            items=items,
            payment_method=data.get("payment_method"),
            buyer=g.current_user,
        )

        body = {
            "message": f"{len(sales)} sale(s) created successfully",
            "sales": [s.to_dict() for s in sales],
        }
        if errors:
            body["errors"] = errors
        return jsonify(body), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create bulk sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Sales history.

    Admins see everything (optionally ?sellerId=), sellers see what they
    sold, buyers see what they bought.
    """
    try:
        user = g.current_user
        if user.role == ROLE_ADMIN:
            sales = sales_service.list_sales(seller_id=optional_int("sellerId", request.args.get("sellerId")))
        elif user.role == ROLE_SELLER:
            sales = sales_service.list_sales(seller_id=user.id)
        else:
            sales = sales_service.list_sales(buyer_id=user.id)
        return jsonify(sales), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale(sale_id, g.current_user)), 200
    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_sale_status_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.update_sale_status(sale_id, data.get("status"), g.current_user)
        return jsonify(sale.to_dict()), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_sale_route(sale_id: int):
    """
    Delete a sale and restock its product (admin or the sale's seller).
    """
    try:
        result = sales_service.delete_sale(sale_id, g.current_user)

        if result.warning == "PRODUCT_NOT_FOUND":
            return jsonify({
                "message": "Sale deleted successfully. Note: Product no longer exists, stock was not updated.",
                "warning": result.warning,
                "restored_quantity": 0,
            }), 200

        body = {
            "message": "Sale deleted successfully. Product quantity and stock have been restored.",
            "restored_quantity": result.restored_quantity,
            "product_name": result.product_name,
        }
        if result.warning:
            body["warning"] = result.warning
        return jsonify(body), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
