# backend/stockledger/routes/system.py
"""System health endpoint."""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    db_health = check_database_health()
    sweeper = current_app.extensions.get("reservation_sweeper")
    body = {
        "status": db_health["status"],
        "database": db_health,
        "sweeper": {"running": bool(sweeper and sweeper.running)},
    }
    return body, 200 if db_health["status"] == "healthy" else 503
