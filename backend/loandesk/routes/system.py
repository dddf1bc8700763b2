# backend/loandesk/routes/system.py
"""
System health endpoint.

Unauthenticated; reports database reachability and event publisher state.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db, events
from loandesk.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/v1")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_events_health() -> dict:
    stats = events.stats()
    if not stats["enabled"]:
        return {"status": "disabled", "details": stats}
    if not stats["running"]:
        return {"status": "degraded", "details": stats}
    return {"status": "healthy", "details": stats}


@system_bp.get("/status")
def status():
    """
    Returns:
    - 200: database reachable (events may be disabled or degraded)
    - 503: database unreachable
    """
    database_health = check_database_health()
    events_health = check_events_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif events_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
            "events": events_health,
        },
    }, http_status
