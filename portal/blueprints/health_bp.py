"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness with dependency status (DB, cache, sweeps)
    GET /api/v1/health/ready  — simple 200 for load balancers
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from portal.models import db
from portal.services.permission import get_admin_directory
from portal.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Cache backend (Redis or in-memory) ───────────────────────────
    # Redis is optional; a cache error does not fail overall health
    checks["cache"] = get_admin_directory().cache.health_check()

    # ── Maintenance sweeps ───────────────────────────────────────────
    checks["scheduler"] = {
        "enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        "jobs": [
            {
                "job_name": j["job_name"],
                "interval_seconds": j["interval_seconds"],
                "last_run_status": (j["db_record"] or {}).get("last_run_status"),
            }
            for j in SchedulerService.list_jobs()
        ],
    }

    checks["app"] = {
        "name": "Content Portal",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
