"""
FastAPI exception handlers for custom exceptions.

WHY: Exception handlers convert our custom exceptions, FastAPI's request
validation errors and Starlette's routing errors into the same
{"error": {code, field?, message}} body, so clients parse one shape.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.core.exceptions import AppException
from helpdesk.middleware.request_context import get_request_context


logger = logging.getLogger(__name__)

# Pydantic error types that mean "you didn't send it" when the input is blank
REQUIRED_ERROR_TYPES = frozenset({"missing", "string_too_short", "too_short"})

HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_body(code: str, message: str, field: str | None = None) -> dict:
    """Build the uniform error payload."""
    error = {"code": code, "message": message}
    if field:
        error["field"] = field
    return {"error": error}


def _is_required_error(error: dict) -> bool:
    """Absent, or present but empty after trimming (a 1-char password is not "missing")."""
    if error.get("type") == "missing":
        return True
    if error.get("type") not in REQUIRED_ERROR_TYPES:
        return False
    value = error.get("input")
    if isinstance(value, str):
        return not value.strip()
    return not value


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle custom AppException and its subclasses.

    Args:
        request: The FastAPI request object
        exc: The custom exception instance

    Returns:
        JSONResponse with error details
    """
    if exc.status_code >= 500:
        logger.error(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={"context": exc.safe_context()},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    WHY: The client gets the first failing field, tagged FIELD_REQUIRED when
    it was absent or blank and VALIDATION_ERROR otherwise.

    Args:
        request: The FastAPI request object
        exc: The Pydantic validation error

    Returns:
        JSONResponse with validation error details
    """
    errors = exc.errors()
    if not errors:
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", "Request validation failed"),
        )

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
    field = loc[-1] if loc else None
    code = "FIELD_REQUIRED" if _is_required_error(first) else "VALIDATION_ERROR"

    if code == "FIELD_REQUIRED" and field:
        message = f"{field} is required"
    else:
        message = first.get("msg", "Request validation failed")

    return JSONResponse(status_code=400, content=error_body(code, message, field))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Handle Starlette HTTP exceptions.

    WHY: Unknown routes (404) and wrong methods (405) are raised before our
    routes run; this keeps them in the uniform shape.

    Args:
        request: The FastAPI request object
        exc: The HTTP exception

    Returns:
        JSONResponse with error details
    """
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.

    WHY: Full traceback goes to the log with the request id; the client
    only ever sees a generic message.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception

    Returns:
        JSONResponse with generic error message
    """
    ctx = get_request_context()
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}",
        extra={"request_id": ctx.request_id if ctx else None},
    )

    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )
