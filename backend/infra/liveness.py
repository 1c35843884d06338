"""Per-request database liveness gate."""

import structlog
from flask import Flask

from db_utils import DatabaseError
from extensions import get_database
from responses import error_response

logger = structlog.get_logger("calendar.backend.liveness")


def enforce_database_liveness():
    database = get_database()
    try:
        database.ensure_alive()
    except DatabaseError as exc:
        logger.error("database.reconnect_failed", error=str(exc))
        return error_response("database_unavailable", "Database connection error", 500)
    return None


def install(app: Flask) -> None:
    app.before_request(enforce_database_liveness)
