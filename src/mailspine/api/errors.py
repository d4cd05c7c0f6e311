"""
Error handlers — map :class:`MailSpineError` codes to RFC 7807 responses.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mailspine.api.schemas import ErrorDetail, ProblemDetail
from mailspine.core.errors import MailSpineError, ValidationError
from mailspine.core.logging import get_logger

logger = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "VALIDATION_FAILED": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "STORE_ERROR": 500,
    "INTERNAL": 500,
}


def status_for_error_code(code: str) -> int:
    """Resolve an error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(title=title, status=status, detail=detail, instance=instance)
    if errors:
        body.errors = [ErrorDetail(**e) for e in errors]
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def mailspine_error_handler(request: Request, exc: MailSpineError) -> JSONResponse:
    status = status_for_error_code(exc.code)
    errors = None
    if isinstance(exc, ValidationError):
        errors = [{"code": exc.code, "message": exc.message, "field": exc.field}]
    if status >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return problem_response(
        status=status,
        title=exc.message,
        instance=request.url.path,
        errors=errors,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and missing form fields are 400s, not FastAPI's default 422."""
    errors = [
        {
            "code": "VALIDATION_FAILED",
            "message": err.get("msg", "invalid"),
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or None,
        }
        for err in exc.errors()
    ]
    return problem_response(
        status=400,
        title="Request validation failed",
        instance=request.url.path,
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all — returns 500 with ProblemDetail."""
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred.",
        instance=request.url.path,
    )
