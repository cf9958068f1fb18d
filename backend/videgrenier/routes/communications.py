# Overview: Flask API routes for the newsletter and the contact form.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import communications_service
from ..decorators import require_auth, require_role


newsletters_bp = Blueprint("newsletters", __name__, url_prefix="/api/newsletters")
contact_bp = Blueprint("contact", __name__, url_prefix="/api/contact")


# =============================================================================
# NEWSLETTER
# =============================================================================

@newsletters_bp.post("/subscribe")
def subscribe_route():
    """Public. Re-subscribing an inactive address reactivates it."""
    try:
        data = request.get_json(silent=True) or {}
        subscription, created = communications_service.subscribe(data.get("email"))
        message = "Successfully subscribed to newsletter!" if created else "Welcome back! Your subscription has been reactivated."
        return jsonify({"message": message, "subscription": subscription.to_dict()}), 201 if created else 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to subscribe to newsletter")
        return jsonify({"error": "Internal server error"}), 500


@newsletters_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_subscribers_route():
    try:
        return jsonify([s.to_dict() for s in communications_service.list_subscribers()]), 200
    except Exception:
        current_app.logger.exception("Failed to list newsletter subscribers")
        return jsonify({"error": "Internal server error"}), 500


@newsletters_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def newsletter_stats_route():
    try:
        return jsonify(communications_service.newsletter_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute newsletter stats")
        return jsonify({"error": "Internal server error"}), 500


@newsletters_bp.delete("/<int:subscription_id>")
@require_auth
@require_role(ROLE_ADMIN)
def unsubscribe_route(subscription_id: int):
    """Soft unsubscribe; ?permanent=true deletes the row."""
    try:
        permanent = request.args.get("permanent", "").lower() in ("1", "true", "yes")
        communications_service.unsubscribe(subscription_id, permanent=permanent)
        message = "Subscriber permanently deleted" if permanent else "Subscriber unsubscribed"
        return jsonify({"message": message}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to unsubscribe")
        return jsonify({"error": "Internal server error"}), 500


@newsletters_bp.put("/<int:subscription_id>/reactivate")
@require_auth
@require_role(ROLE_ADMIN)
def reactivate_route(subscription_id: int):
    try:
        subscription = communications_service.reactivate(subscription_id)
        return jsonify({"message": "Subscriber reactivated", "subscription": subscription.to_dict()}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reactivate subscriber")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CONTACT FORM
# =============================================================================

@contact_bp.post("/submit")
def submit_contact_route():
    try:
        communications_service.submit_contact_form(request.get_json(silent=True) or {})
        return jsonify({"message": "Your message has been sent successfully! We will get back to you soon."}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit contact form")
        return jsonify({"error": "Internal server error"}), 500
