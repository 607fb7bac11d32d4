# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and background worker state for deployment
debugging. Unauthenticated; exposes counts only.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Order, Product
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count, "orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "environment": current_app.config.get("APP_ENV"),
        "checks": {
            "database": database,
            "notifications": {"mode": current_app.config.get("NOTIFICATION_DISPATCH_MODE")},
        },
    }
    return jsonify(body), 200 if healthy else 503
