# Overview: Flask API routes for product image uploads.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import upload_service
from ..decorators import require_auth, require_role


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/upload")


@uploads_bp.post("/product-image")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def upload_product_image_route():
    """multipart/form-data with the file in field "image"."""
    try:
        stored = upload_service.upload_product_image(request.files.get("image"))
        return jsonify({"success": True, **stored}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to upload product image")
        return jsonify({"error": "Internal server error"}), 500


@uploads_bp.delete("/product-image/<path:public_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SELLER)
def delete_product_image_route(public_id: str):
    try:
        deleted = upload_service.delete_product_image(public_id)
        if not deleted:
            return jsonify({"error": "Image not found", "reason": "NOT_FOUND"}), 404
        return jsonify({"success": True, "message": "Image deleted successfully"}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product image")
        return jsonify({"error": "Internal server error"}), 500
