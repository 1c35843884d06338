import time
from typing import Dict, Tuple

import structlog

from db_utils import DatabaseError, resolve_database_url
from extensions import DatabaseManager

logger = structlog.get_logger("calendar.backend.health")


def check_db_connection(database: DatabaseManager) -> Tuple[bool, str]:
    try:
        database.establish()
    except DatabaseError as exc:
        logger.warning("health.db_check_failed", error=str(exc))
        return False, str(exc)
    return database.is_alive(), ""


def describe_target(database: DatabaseManager) -> str:
    try:
        url = resolve_database_url(database.settings())
    except DatabaseError as exc:
        return f"<invalid: {exc}>"
    return url.render_as_string(hide_password=True)


def build_health_summary(database: DatabaseManager) -> Tuple[Dict[str, object], bool]:
    started = time.perf_counter()
    db_ok, error = check_db_connection(database)
    summary: Dict[str, object] = {
        "target": describe_target(database),
        "db_ok": db_ok,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    if error:
        summary["error"] = error
    return summary, db_ok
