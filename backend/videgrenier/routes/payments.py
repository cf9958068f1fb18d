# Overview: Flask API routes for mobile-money payments; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ApiError, error_response
from ..services import payment_service
from ..decorators import require_auth
from ..validation import pick


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.post("/mobile/initiate")
@require_auth
def initiate_mobile_payment_route():
    """
    Start a mobile-money collection.

    Body: order_id, phone_number (237...), amount (XAF, at least 150)
    The customer confirms on their phone; completion arrives by webhook.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.initiate_mobile_payment(
            order_id=pick(data, "order_id", "orderId"),
            phone_number=pick(data, "phone_number", "phoneNumber"),
            amount=data.get("amount"),
        )
        return jsonify({
            "success": True,
            "message": "Payment initiated. Please confirm on your phone.",
            "reference": result["reference"],
            "status": result["status"],
            "ussd_code": result["ussd_code"],
            "operator": result["operator"],
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to initiate mobile payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/mobile/status/<reference>")
@require_auth
def payment_status_route(reference: str):
    try:
        return jsonify({"success": True, **payment_service.check_payment_status(reference)}), 200
    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/webhook/campay")
def campay_webhook_route():
    """
    Gateway callback. Signed with X-CamPay-Signature; a bad signature is 401.
    """
    try:
        result = payment_service.handle_webhook(
            request.get_json(silent=True),
            request.headers.get("X-CamPay-Signature"),
        )
        return jsonify({"success": True, **result}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process CamPay webhook")
        return jsonify({"error": "Internal server error"}), 500
