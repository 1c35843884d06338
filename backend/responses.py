from typing import Any, Dict, Optional

from flask import jsonify

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    500: "internal_error",
    503: "service_unavailable",
}


def error_code_for_status(status: int) -> str:
    code = ERROR_CODE_BY_STATUS.get(status)
    if code is None:
        code = "internal_error" if status >= 500 else "bad_request"
    return code


def error_response(
    code: str,
    message: str,
    status: int,
    details: Optional[Dict[str, Any]] = None,
):
    payload = {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
    return jsonify(payload), status
