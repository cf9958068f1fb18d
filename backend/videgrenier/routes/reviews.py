# Overview: Flask API routes for product reviews; parses input and returns JSON responses.

# backend/videgrenier/routes/reviews.py
"""
Review routes.

Anyone may post a review; it stays "pending" until the product's seller or an
admin approves it. Public reads only ever see approved reviews.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import review_service
from ..decorators import require_auth, require_role
from ..validation import optional_int


reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")

REVIEW_ALIASES = {
    "productId": "product_id",
    "customerName": "customer_name",
    "customerEmail": "customer_email",
}


@reviews_bp.post("")
def create_review_route():
    try:
        data = request.get_json(silent=True) or {}
        payload = {REVIEW_ALIASES.get(k, k): v for k, v in data.items()}
        review = review_service.create_review(payload)
        return jsonify({
            "message": "Review submitted successfully. It will be visible after moderation.",
            "review": review.to_dict(),
        }), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/product/<int:product_id>")
def list_product_reviews_route(product_id: int):
    """Approved reviews of one product, newest first."""
    try:
        reviews = review_service.list_reviews(product_id=product_id, status="approved")
        return jsonify([r.to_dict() for r in reviews]), 200
    except Exception:
        current_app.logger.exception("Failed to list product reviews")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/product/<int:product_id>/stats")
def product_review_stats_route(product_id: int):
    try:
        return jsonify(review_service.product_review_stats(product_id)), 200
    except Exception:
        current_app.logger.exception("Failed to compute review stats")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def list_reviews_route():
    """
    Moderation queue.

    Query params:
    - productId: int (optional)
    - status: pending | approved | rejected (optional)

    Sellers only see reviews of their own products.
    """
    try:
        user = g.current_user
        reviews = review_service.list_reviews(
            product_id=optional_int("productId", request.args.get("productId")),
            status=request.args.get("status"),
            seller_id=None if user.role == ROLE_ADMIN else user.id,
        )
        return jsonify([r.to_dict() for r in reviews]), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list reviews")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.get("/<int:review_id>")
def get_review_route(review_id: int):
    try:
        return jsonify(review_service.get_review(review_id).to_dict()), 200
    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get review")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.put("/<int:review_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def update_review_status_route(review_id: int):
    try:
        data = request.get_json(silent=True) or {}
        review = review_service.update_review_status(review_id, data.get("status"), g.current_user)
        return jsonify(review.to_dict()), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update review status")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.put("/<int:review_id>/helpful")
def mark_helpful_route(review_id: int):
    try:
        review = review_service.mark_helpful(review_id)
        return jsonify({"helpful_count": review.helpful_count}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark review helpful")
        return jsonify({"error": "Internal server error"}), 500


@reviews_bp.delete("/<int:review_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_review_route(review_id: int):
    try:
        review_service.delete_review(review_id, g.current_user)
        return jsonify({"message": "Review deleted successfully"}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete review")
        return jsonify({"error": "Internal server error"}), 500
