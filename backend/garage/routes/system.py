# backend/garage/routes/system.py
"""
System health endpoint.

Checks database connectivity and that the approval vocabulary is seeded.
"""

import time

from flask import Blueprint, current_app
from ..extensions import db
from ..models import Company, StatusMessage, WorkflowLevel
from garage.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        company_count = db.session.query(Company).count()
        level_count = db.session.query(WorkflowLevel).filter_by(is_active=True).count()
        status_count = db.session.query(StatusMessage).count()

        elapsed_ms = (time.time() - start_time) * 1000
        status = "healthy" if status_count else "degraded"
        result = {
            "status": status,
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "companies": company_count,
                "workflow_levels": level_count,
                "status_messages": status_count,
            }
        }
        if status == "degraded":
            result["warning"] = "No status vocabulary configured"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }
    return response, http_status
