import logging
import os
import sys
import time
from typing import Any, Mapping, Optional

import structlog
from flask import Flask, Response, g, request
from werkzeug.exceptions import HTTPException

from extensions import DatabaseManager
from infra import liveness
from responses import error_code_for_status, error_response

GREETING = "Hello, Calendar!"


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    structlog.configure(
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("flask.app").setLevel(logging.WARNING)


logger = structlog.get_logger("calendar.backend")


def _start_request_timer():
    g.request_start_time = time.perf_counter()


def _log_request(response: Response):
    start = getattr(g, "request_start_time", None)
    duration_ms = (time.perf_counter() - start) * 1000 if start is not None else 0.0
    logger.bind(
        method=request.method,
        path=request.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    ).info("request.completed")
    return response


def handle_http_exception(exc: HTTPException):
    status = exc.code or 500
    message = exc.description or exc.name or "HTTP error"
    code = error_code_for_status(status)
    log_method = logger.error if status >= 500 else logger.warning
    log_method(
        "request.http_exception",
        status_code=status,
        error_code=code,
        description=message,
    )
    return error_response(code, message, status)


def handle_unexpected_exception(exc: Exception):
    logger.bind(status_code=500).exception(
        "request.unhandled_exception", error=str(exc)
    )
    return error_response("internal_error", "An unexpected error occurred", 500)


def home():
    return Response(GREETING, status=200, mimetype="text/plain")


def create_app(
    database: Optional[DatabaseManager] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> Flask:
    """Build the Flask application around ``database``.

    The timer hook is registered ahead of the liveness gate so rejected
    requests are still logged with their duration.
    """
    app = Flask(__name__)
    if config:
        app.config.update(config)

    database = database if database is not None else DatabaseManager()
    database.init_app(app)

    app.before_request(_start_request_timer)
    liveness.install(app)
    app.after_request(_log_request)

    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_unexpected_exception)

    app.add_url_rule("/", endpoint="home", view_func=home, methods=["GET"])
    return app


if __name__ == "__main__":
    from lifecycle import run_service

    configure_logging()
    sys.exit(run_service())
