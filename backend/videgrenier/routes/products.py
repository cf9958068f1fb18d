# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/videgrenier/routes/products.py
"""
Product catalog routes.

Reads are public. Writes require a seller or admin; sellers only touch their
own listings. Quantity is set at creation and afterwards only moves through
sales and supplies.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import products_service
from ..decorators import require_auth, require_role
from ..validation import optional_int

# Wire aliases -> model keys
FIELD_ALIASES = {
    "user_id": "owner_id",
    "userId": "owner_id",
    "creatorName": "creator_name",
    "photoPublicId": "photo_public_id",
}


def _product_payload(data: dict) -> dict:
    return {FIELD_ALIASES.get(k, k): v for k, v in data.items()}


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List products, newest first.

    Query params:
    - userId: int (optional) - only this seller's products
    - category: str (optional)
    """
    try:
        products = products_service.list_products(
            owner_id=optional_int("userId", request.args.get("userId")),
            category=request.args.get("category"),
        )
        return jsonify([p.to_dict() for p in products]), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_product_route():
    """Create a product and open its current-month stock record."""
    try:
        payload = _product_payload(request.get_json(silent=True) or {})
        product = products_service.create_product(payload, g.current_user)
        return jsonify(product.to_dict()), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_product_route(product_id: int):
    try:
        payload = _product_payload(request.get_json(silent=True) or {})
        product = products_service.update_product(product_id, payload, g.current_user)
        return jsonify(product.to_dict()), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_product_route(product_id: int):
    """
    Delete a product and its stock records.

    400 with an itemized `dependencies` list while sales, supplies or reviews
    still reference it.
    """
    try:
        result = products_service.delete_product(product_id, g.current_user)
        return jsonify({
            "message": "Product deleted successfully",
            "productId": result.product_id,
            "productName": result.product_name,
            "deletedStockRecords": result.deleted_stock_records,
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
