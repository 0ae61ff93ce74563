import logging

from flask import Blueprint, current_app
from sqlalchemy import text

from models import db
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database unreachable")
        return error_response("Database unavailable", error="db_unavailable", status_code=503)

    registry = current_app.extensions.get("connection_registry")
    return success_response("OK", {
        "database": "ok",
        "websocket_connections": registry.connected_count() if registry is not None else 0,
    })
