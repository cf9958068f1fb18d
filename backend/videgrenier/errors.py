# Overview: Error taxonomy shared by services and routes.

"""
Every error a service raises on purpose is an ApiError subclass.

Routes translate them with error_response(); anything else is a bug and is
logged and reported as a generic 500.

Payload shape:
    {"error": "<human readable>", "reason": "<MACHINE_REASON>", ...details}
"""

from __future__ import annotations

from flask import jsonify


class ApiError(Exception):
    """Base class for expected, user-visible failures."""
    status_code = 500
    reason = "SERVER_ERROR"

    def __init__(self, message: str, details: dict | None = None, *, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        payload = {"error": self.message, "reason": self.reason}
        payload.update(self.details)
        return payload


class ValidationError(ApiError):
    """400-level input problem (missing or malformed fields)."""
    status_code = 400
    reason = "VALIDATION_ERROR"


class AuthenticationError(ApiError):
    """401: missing, invalid or expired credentials."""
    status_code = 401
    reason = "AUTH_REQUIRED"


class ForbiddenError(ApiError):
    """403: authenticated but not allowed."""
    status_code = 403
    reason = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = 404
    reason = "NOT_FOUND"


class ConflictError(ApiError):
    """409-level business rule conflict (duplicate, blocked by dependents)."""
    status_code = 409
    reason = "CONFLICT"


class ProductInUseError(ConflictError):
    """Product deletion blocked by sales, supplies or reviews."""
    status_code = 400
    reason = "PRODUCT_HAS_DEPENDENCIES"

    def __init__(self, dependencies: list[dict]):
        super().__init__(
            "Cannot delete product: it is referenced by other records",
            details={"dependencies": dependencies},
        )
        self.dependencies = dependencies


class InsufficientStockError(ApiError):
    status_code = 400
    reason = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, *, available: int, product_id: int | None = None):
        details = {"available": available}
        if product_id is not None:
            details["product_id"] = product_id
        super().__init__(message, details=details)
        self.available = available
        self.product_id = product_id


class AllItemsFailedError(ApiError):
    """Bulk sale where no item could be sold; nothing was committed."""
    status_code = 400
    reason = "ALL_ITEMS_FAILED"

    def __init__(self, errors: list[dict]):
        super().__init__("All sales failed", details={"errors": errors})
        self.errors = errors


class UpstreamError(ApiError):
    """An external provider (email, payment gateway, blob store) failed."""
    status_code = 502
    reason = "UPSTREAM_FAILURE"


def error_response(err: ApiError):
    return jsonify(err.to_dict()), err.status_code
