# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/videgrenier/routes/auth.py
"""
Authentication API routes

- Self-registration for buyers and sellers, gated by email verification
- Opaque bearer session tokens (see session_service)
- Password reset by emailed single-use link
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ApiError, error_response
from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth
from ..validation import pick


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Create an account and send the verification email.

    Body: firstName, lastName, email, password, userType ("buyer" | "seller")
    (snake_case first_name/last_name/role are accepted too)

    If the email cannot be sent, the account is removed and 502 is returned.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register(
            first_name=pick(data, "firstName", "first_name", default=""),
            last_name=pick(data, "lastName", "last_name", default=""),
            email=data.get("email") or "",
            password=data.get("password") or "",
            role=pick(data, "userType", "role", default="buyer"),
        )
        return jsonify({
            "message": "Registration successful! Please check your email to verify your account.",
            "user": user.to_dict(),
        }), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/verify-email")
def verify_email_route():
    """Redeem the ?token= from the verification link."""
    try:
        result = auth_service.verify_email(request.args.get("token"))
        status = result["status"]

        if status == "expired":
            return jsonify({
                "error": "Verification link has expired. Please request a new one.",
                "reason": "TOKEN_EXPIRED",
            }), 400

        if status == "already_verified":
            return jsonify({"message": "Email already verified. You can log in.", "alreadyVerified": True}), 200

        return jsonify({
            "message": "Email verified successfully! You can now log in.",
            "user": result["user"].to_dict(),
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify email")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/resend-verification")
def resend_verification_route():
    try:
        data = request.get_json(silent=True) or {}
        auth_service.resend_verification(data.get("email"))
        return jsonify({"message": "Verification email sent. Please check your inbox."}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resend verification email")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and open a session.

    Returns the user and a token to send as `Authorization: Bearer <token>`.
    """
    try:
        data = request.get_json(silent=True) or {}
        user, token = auth_service.login(
            data.get("email"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("User %s logged in", user.id)
        return jsonify({
            "message": "Login successful",
            "token": token,
            "user": user.to_dict(),
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session the request was made with."""
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logged out successfully"}), 200
    except Exception:
        current_app.logger.exception("Failed to log out")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/forgot-password")
def forgot_password_route():
    """Always answers the same way so account existence is not disclosed."""
    try:
        data = request.get_json(silent=True) or {}
        auth_service.forgot_password(data.get("email"))
        return jsonify({
            "message": "If an account exists with this email, a password reset link has been sent.",
        }), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process forgot-password request")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/reset-password")
def reset_password_route():
    try:
        data = request.get_json(silent=True) or {}
        auth_service.reset_password(
            data.get("token"),
            pick(data, "newPassword", "new_password", "password"),
        )
        return jsonify({"message": "Password reset successfully. You can now log in."}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500
