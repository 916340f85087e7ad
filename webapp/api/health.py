"""Health check endpoint."""

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from chemgrader.database.models import db
from chemgrader.models.api_responses import APIResponse
from utils.logger import logger

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.route("/health", methods=["GET"])
def health():
    services = current_app.extensions["chemgrader"]
    try:
        db.session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_ok = False

    data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": "healthy" if database_ok else "degraded",
        "services": {
            "database": database_ok,
            "extraction": services["extraction"] is not None,
            "llm": services["llm"] is not None,
        },
        "operations": {
            name: value for name, value in logger.metrics.items() if name != "start_time"
        },
    }
    return jsonify(APIResponse.success(data=data).to_dict()), 200 if database_ok else 503
