"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — simple 200 for load balancers
    GET /api/v1/health/live   — liveness with database round-trip
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import text

from badger.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness probe, always 200 while the app is running."""
    return jsonify({"status": "ok", "app": "badger"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check including a database round-trip."""
    try:
        t0 = time.perf_counter()
        db.session.execute(text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        return jsonify({"status": "error", "database": {"status": "error", "detail": str(exc)}}), 503

    return jsonify({"status": "ok", "database": {"status": "ok", "latency_ms": round(db_ms, 1)}}), 200
