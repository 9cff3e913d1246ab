"""Jokes API - Result values and JSON envelope

Tools return plain dicts. Failures are values, not exceptions:
    {"error": True, "code": "NOT_FOUND", "message": "Joke not found"}

The HTTP layer maps codes to status codes and wraps everything in the
standard envelope: {"success": bool, "message": str, "data": ...}
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse

VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
FORBIDDEN = "FORBIDDEN"
CONFLICT = "CONFLICT"
UNAUTHENTICATED = "UNAUTHENTICATED"
DATABASE_UNAVAILABLE = "DATABASE_UNAVAILABLE"
INTERNAL_ERROR = "INTERNAL_ERROR"

STATUS_BY_CODE = {
    VALIDATION_ERROR: 422,
    NOT_FOUND: 404,
    FORBIDDEN: 403,
    CONFLICT: 409,
    UNAUTHENTICATED: 401,
    DATABASE_UNAVAILABLE: 503,
    INTERNAL_ERROR: 500,
}

GENERIC_FAILURE_MESSAGE = "Something went wrong! Process did not complete."


def error_result(code: str, message: str, errors: Optional[dict] = None) -> dict:
    result = {"error": True, "code": code, "message": message}
    if errors:
        result["errors"] = errors
    return result


def validation_error(message: str, field: Optional[str] = None) -> dict:
    """Single-field validation failure in the per-field errors layout."""
    errors = {field: [message]} if field else None
    return error_result(VALIDATION_ERROR, message, errors)


def not_found(message: str) -> dict:
    return error_result(NOT_FOUND, message)


def forbidden(message: str) -> dict:
    return error_result(FORBIDDEN, message)


def conflict(message: str) -> dict:
    return error_result(CONFLICT, message)


def is_error(result: Any) -> bool:
    return isinstance(result, dict) and result.get("error") is True


def envelope(data: Any, message: Optional[str], success: bool = True) -> dict:
    return {"success": success, "message": message, "data": data}


def to_response(result: dict, success_status: int = 200) -> JSONResponse:
    """Convert a tool result into the JSON envelope with the right status code.

    Success results carry their human-readable text under "message"; everything
    else in the dict becomes the envelope's data.
    """
    if is_error(result):
        status_code = STATUS_BY_CODE.get(result.get("code"), 500)
        data = {"errors": result["errors"]} if result.get("errors") else None
        return JSONResponse(
            status_code=status_code,
            content=envelope(data, result.get("message"), success=False),
        )

    payload = dict(result)
    message = payload.pop("message", None)
    return JSONResponse(status_code=success_status, content=envelope(payload or None, message))
