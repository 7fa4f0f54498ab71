# backend/agendo/routes/system.py
"""
System health endpoint.

Checks the database and the real-time feed hub.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Tenant
from ..services.realtime_service import feed
from agendo.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "tenants": tenant_count,
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


def check_feed_health() -> dict:
    return {
        "status": "healthy",
        "details": {
            "subscribers": feed.subscriber_count(),
            "queue_size": feed.queue_size,
        }
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: All systems healthy
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    feed_health = check_feed_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "realtime_feed": feed_health,
        }
    }

    return response, http_status
