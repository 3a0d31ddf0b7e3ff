# backend/doorstep/routes/system.py
"""
System health endpoint.

Checks database connectivity and coverage readiness so deployments can tell
an empty or broken installation from a working one.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Agent, CoverageArea, Delivery
from doorstep.services.notification_service import EXTENSION_KEY
from doorstep.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        area_count = db.session.query(CoverageArea).count()
        agent_count = db.session.query(Agent).filter_by(is_active=True).count()
        delivery_count = db.session.query(Delivery).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "coverage_areas": area_count,
                "active_agents": agent_count,
                "deliveries": delivery_count,
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


def check_coverage_health(database_health: dict) -> dict:
    """Degraded when no area or no active agent exists: every delivery would be unassigned."""
    details = database_health.get("details")
    if details is None:
        return {"status": "unhealthy", "error": "Database unavailable"}

    if details["coverage_areas"] == 0 or details["active_agents"] == 0:
        return {
            "status": "degraded",
            "warning": "No coverage areas or active agents configured",
        }
    return {"status": "healthy"}


def check_notification_health() -> dict:
    state = current_app.extensions.get(EXTENSION_KEY)
    if state is None:
        return {"status": "degraded", "warning": "Notification sink not configured"}
    return {
        "status": "healthy",
        "details": {
            "sink": type(state.sink).__name__,
            "async": state.executor is not None,
        }
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unavailable
    """
    start_time = time.time()

    database_health = check_database_health()
    coverage_health = check_coverage_health(database_health)
    notification_health = check_notification_health()

    all_checks = [database_health, coverage_health, notification_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "coverage": coverage_health,
            "notifications": notification_health,
        }
    }

    return response, http_status
