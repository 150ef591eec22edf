"""
Exception handlers mapping tracking errors to JSON responses.

Error Response Format:
{
    "error": {
        "status_code": 404,
        "message": "Email with id '7' not found",
        "type": "Not Found",
        "details": {"resource_type": "Email", "resource_id": 7, "tenant_id": "acme"},
        "path": "/acme/click/7"
    }
}
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from little_bell.exceptions import StoreBusyError, TrackingError

logger = structlog.get_logger()

RETRY_AFTER_SECONDS = 1

ERROR_TYPES = {
    400: "Bad Request",
    404: "Not Found",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def create_error_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    path: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a standardized error response."""
    error: Dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "type": ERROR_TYPES.get(status_code, "Error"),
    }
    if details:
        error["details"] = details
    if path:
        error["path"] = path
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers)


async def tracking_exception_handler(request: Request, exc: TrackingError) -> JSONResponse:
    """Handle every error raised by the tracking core."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        **exc.details,
    )

    headers = None
    if isinstance(exc, StoreBusyError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
        path=request.url.path,
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackingError, tracking_exception_handler)
