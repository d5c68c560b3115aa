# backend/fleetstock/routes/system.py
"""
System health endpoint.

Reports database reachability plus a few ledger counters useful when
debugging a deployment.
"""

import time
from flask import Blueprint, jsonify
from ..extensions import db
from ..logging_config import get_logger
from ..models import InventoryItem, StockTransfer, Vehicle
from ..time_utils import isoformat_z, utcnow

system_bp = Blueprint("system", __name__)
logger = get_logger("system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        item_count = db.session.query(InventoryItem).count()
        vehicle_count = db.session.query(Vehicle).count()
        pending = db.session.query(StockTransfer).filter_by(status="pending").count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "inventory_items": item_count,
                "vehicles": vehicle_count,
                "pending_transfers": pending,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        logger.exception("database_health_check_failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": isoformat_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), 200 if healthy else 503
