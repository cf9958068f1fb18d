# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import user_service
from ..decorators import require_auth, require_role
from ..validation import pick


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_payload(data: dict) -> dict:
    """Accept camelCase from the admin panel alongside snake_case."""
    aliases = {"firstName": "first_name", "lastName": "last_name", "userType": "role"}
    return {aliases.get(k, k): v for k, v in data.items()}


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    try:
        return jsonify([u.to_dict() for u in user_service.list_users()]), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        return jsonify(user_service.get_user(user_id).to_dict()), 200
    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """Admin-created accounts skip email verification."""
    try:
        user = user_service.create_user(_user_payload(request.get_json(silent=True) or {}))
        current_app.logger.info("User %s created by admin %s", user.id, g.current_user.id)
        return jsonify(user.to_dict()), 201

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    try:
        user = user_service.update_user(user_id, _user_payload(request.get_json(silent=True) or {}))
        return jsonify(user.to_dict()), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(user_id, g.current_user)
        current_app.logger.info("User %s deleted by admin %s", user_id, g.current_user.id)
        return jsonify({"message": "User deleted successfully"}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>/password")
@require_auth
def change_password_route(user_id: int):
    """Self-service or admin. The current password is always required."""
    try:
        data = request.get_json(silent=True) or {}
        user_service.change_password(
            user_id,
            pick(data, "currentPassword", "current_password"),
            pick(data, "newPassword", "new_password"),
            g.current_user,
        )
        return jsonify({"message": "Password updated successfully"}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>/toggle-block")
@require_auth
@require_role(ROLE_ADMIN)
def toggle_block_route(user_id: int):
    try:
        user = user_service.toggle_block(user_id)
        state = "blocked" if user.is_blocked else "unblocked"
        current_app.logger.info("User %s %s by admin %s", user.id, state, g.current_user.id)
        return jsonify({"message": f"User {state} successfully", "user": user.to_dict()}), 200

    except ApiError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle user block")
        return jsonify({"error": "Internal server error"}), 500
