# Overview: Flask API routes for supplies operations; parses input and returns JSON responses.

# backend/videgrenier/routes/supplies.py
"""
Supply routes (sellers and admins).

Accepts the storefront's French field names as well as the model's own:
    id_produit, id_user, id_fournisseur, quantite, prix_unitaire,
    date_approvisionnement, notes
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import supply_service
from ..decorators import require_auth, require_role


WIRE_FIELDS = {
    "id_produit": "product_id",
    "id_user": "user_id",
    "id_fournisseur": "supplier_id",
    "quantite": "quantity",
    "prix_unitaire": "unit_price",
    "date_approvisionnement": "supply_date",
}


def _supply_payload(data: dict) -> dict:
    return {WIRE_FIELDS.get(k, k): v for k, v in data.items()}


supplies_bp = Blueprint("supplies", __name__, url_prefix="/api/supplies")


@supplies_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def list_supplies_route():
    """Admins see every supply; sellers see supplies of their own products."""
    try:
        user = g.current_user
        owner_id = None if user.role == ROLE_ADMIN else user.id
        return jsonify(supply_service.list_supplies(owner_id=owner_id)), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list supplies")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.get("/<int:supply_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def get_supply_route(supply_id: int):
    try:
        supply = supply_service.get_supply(supply_id)
        user = g.current_user
        if user.role != ROLE_ADMIN and (supply.product is None or supply.product.owner_id != user.id):
            return jsonify({"error": "Not allowed to view this supply", "reason": "FORBIDDEN"}), 403
        return jsonify(supply.to_dict()), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get supply")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_supply_route():
    """
    Record a delivery. Product quantity and the current month's stock record
    both grow by the supplied quantity.
    """
    try:
        payload = _supply_payload(request.get_json(silent=True) or {})
        supply = supply_service.create_supply(payload, g.current_user)
        return jsonify({
            "message": "Supply created successfully and stock updated",
            "supply": supply.to_dict(),
        }), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supply")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.put("/<int:supply_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_supply_route(supply_id: int):
    try:
        payload = _supply_payload(request.get_json(silent=True) or {})
        supply = supply_service.update_supply(supply_id, payload, g.current_user)
        return jsonify({
            "message": "Supply updated successfully",
            "supply": supply.to_dict(),
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supply")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.delete("/<int:supply_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_supply_route(supply_id: int):
    try:
        removed = supply_service.delete_supply(supply_id, g.current_user)
        return jsonify({
            "message": "Supply deleted successfully and stock updated",
            "removed_quantity": removed,
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supply")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.get("/suppliers")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def list_suppliers_route():
    try:
        return jsonify([s.to_dict() for s in supply_service.list_suppliers()]), 200
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@supplies_bp.post("/suppliers")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def create_supplier_route():
    try:
        supplier = supply_service.create_supplier(request.get_json(silent=True) or {})
        return jsonify(supplier.to_dict()), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500
