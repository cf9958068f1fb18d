# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object
    - g.session_token: The plaintext token (for logout)

    Returns 401 if the Authorization header is missing or the token is
    invalid/expired, and 403 if the account is blocked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({
                "error": "Access denied. Please login to continue.",
                "reason": "AUTH_REQUIRED",
            }), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({
                "error": "Invalid or expired token. Please login again.",
                "reason": "AUTH_REQUIRED",
            }), 401

        if context.user.is_blocked:
            return jsonify({
                "error": "Your account has been blocked. Please contact support.",
                "reason": "ACCOUNT_BLOCKED",
            }), 403

        g.current_user = context.user
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "reason": "AUTH_REQUIRED"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Access denied. Insufficient permissions.",
                    "reason": "INSUFFICIENT_PERMISSIONS",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
