# Overview: Flask API routes for the monthly stock ledger; read-only.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import stock_service
from ..decorators import require_auth, require_role
from ..validation import optional_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def list_stock_route():
    """
    Monthly stock records.

    Query params:
    - month, year: int (optional) - filter to one month; both must be given
    - userId: int (optional, admin only) - one seller's products

    Sellers always see their own products only.
    """
    try:
        user = g.current_user
        owner_id = optional_int("userId", request.args.get("userId"))
        if user.role != ROLE_ADMIN:
            owner_id = user.id

        records = stock_service.list_stock_records(
            month=optional_int("month", request.args.get("month")),
            year=optional_int("year", request.args.get("year")),
            owner_id=owner_id,
        )
        return jsonify(records), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock records")
        return jsonify({"error": "Internal server error"}), 500
