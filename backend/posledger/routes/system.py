# backend/posledger/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports row counts for the tables the
engine depends on.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Product, StockFamily, Shift, SHIFT_ACTIVE, SHIFT_PENDING_APPROVAL
from posledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        product_count = db.session.query(Product).count()
        family_count = db.session.query(StockFamily).count()
        active_shifts = db.session.query(Shift).filter_by(status=SHIFT_ACTIVE).count()
        pending_shifts = db.session.query(Shift).filter_by(status=SHIFT_PENDING_APPROVAL).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "stock_families": family_count,
                "active_shifts": active_shifts,
                "shifts_pending_approval": pending_shifts,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, (200 if healthy else 503)
