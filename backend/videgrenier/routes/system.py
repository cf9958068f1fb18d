# backend/videgrenier/routes/system.py
"""
System health endpoints.

/health checks the database and the session table and reports per-component
status with latency. 503 if any component is unhealthy.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Product, SessionToken, StockRecord, User
from videgrenier.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()
        stock_record_count = db.session.query(StockRecord).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "products": product_count,
                "stock_records": stock_record_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        # Could be cleaned up with `flask system cleanup-sessions`
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error"
        }


@system_bp.get("/")
def index():
    return jsonify({"message": "Vide Grenier Kamer API", "status": "running"}), 200


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: all components healthy
    - 503: one or more components unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()

    all_checks = [database_health, session_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_service": session_health,
        }
    }

    return response, http_status
