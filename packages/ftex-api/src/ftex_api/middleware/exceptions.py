"""Global exception handlers for the FTeX API.

Every error leaves the API as an RFC 7807 Problem Details document:
{
    "type": "https://api.ftex.io/errors/<error-type>",
    "title": "Human-readable error title",
    "status": 400,
    "detail": "Detailed error description",
    "instance": "/api/rest/v1/fiat/exchange/offer",
    "request_id": "req_abc123",
    "timestamp": "2024-01-01T00:00:00Z"
}

Client-facing detail stays generic for upstream and internal failures; the
diagnostic detail goes to the log with the correlation ID.
"""
from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from ftex_core.exceptions import FtexException

logger = logging.getLogger(__name__)

# Base URL for error type URIs
ERROR_TYPE_BASE = "https://api.ftex.io/errors"


@dataclass
class RFC7807Error:
    """RFC 7807 Problem Details representation."""
    type: str
    title: str
    status: int
    detail: str
    instance: str
    request_id: str
    extensions: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to RFC 7807 compliant dictionary."""
        result = {
            "type": self.type,
            "title": self.title,
            "status": self.status,
            "detail": self.detail,
            "instance": self.instance,
            "request_id": self.request_id,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        if self.extensions:
            result.update(self.extensions)
        return result


# Error type mappings for consistent error URIs
ERROR_TYPES = {
    "INVALID_REQUEST": ("invalid-request", "Invalid Request"),
    "VALIDATION_ERROR": ("validation-error", "Validation Error"),
    "FORBIDDEN": ("forbidden", "Access Denied"),
    "NOT_FOUND": ("not-found", "Resource Not Found"),
    "OFFER_EXPIRED": ("offer-expired", "Offer Expired"),
    "ALREADY_EXISTS": ("already-exists", "Resource Already Exists"),
    "PRECONDITION_FAILED": ("precondition-failed", "Precondition Failed"),
    "UPSTREAM_ERROR": ("upstream-error", "Upstream Error"),
    "TRANSIENT_UPSTREAM": ("service-unavailable", "Service Unavailable"),
    "CACHE_UNAVAILABLE": ("service-unavailable", "Service Unavailable"),
    "INTERNAL_ERROR": ("internal-error", "Internal Server Error"),
    "METHOD_NOT_ALLOWED": ("method-not-allowed", "Method Not Allowed"),
}


def get_request_id(request: Request) -> str:
    """Extract request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", "unknown")


def is_production(request: Request) -> bool:
    """Only dev and test environments expose exception internals."""
    settings = getattr(request.app.state, "settings", None)
    return settings is None or settings.environment not in ("dev", "test")


def create_error_response(
    error_code: str,
    message: str,
    status_code: int,
    request_id: str,
    details: dict | None = None,
    instance: str = "",
) -> JSONResponse:
    """Create an RFC 7807 compliant error response."""
    type_info = ERROR_TYPES.get(
        error_code,
        (error_code.lower().replace("_", "-"), error_code.replace("_", " ").title()),
    )
    error = RFC7807Error(
        type=f"{ERROR_TYPE_BASE}/{type_info[0]}",
        title=type_info[1],
        status=status_code,
        detail=message,
        instance=instance,
        request_id=request_id,
        extensions=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=error.to_dict(),
        headers={"X-Request-ID": request_id},
        media_type="application/problem+json",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    app.add_middleware(ExceptionHandlerMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request schema validation errors."""
        request_id = get_request_id(request)

        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        logger.warning(
            f"Validation error: {len(errors)} field(s) failed",
            extra={"path": request.url.path},
        )

        return create_error_response(
            error_code="VALIDATION_ERROR",
            message="One or more fields failed validation",
            status_code=422,
            request_id=request_id,
            details={"errors": errors},
            instance=request.url.path,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle routing-level HTTP exceptions (404, 405)."""
        status_to_code = {
            400: "INVALID_REQUEST",
            403: "FORBIDDEN",
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }
        error_code = status_to_code.get(exc.status_code, "INTERNAL_ERROR")

        logger.warning(
            f"HTTP error {exc.status_code}: {exc.detail}",
            extra={"path": request.url.path},
        )

        return create_error_response(
            error_code=error_code,
            message=str(exc.detail) if exc.detail else "An error occurred",
            status_code=exc.status_code,
            request_id=get_request_id(request),
            instance=request.url.path,
        )

    @app.exception_handler(FtexException)
    async def ftex_exception_handler(
        request: Request, exc: FtexException
    ) -> JSONResponse:
        """Handle all FTeX exceptions."""
        request_id = get_request_id(request)

        if exc.http_status >= 500:
            logger.error(
                f"Server error: {exc.error_code} - {exc.message}",
                extra={"error_code": exc.error_code, "path": request.url.path},
                exc_info=exc.__cause__ is not None,
            )
        else:
            logger.warning(
                f"Client error: {exc.error_code} - {exc.message}",
                extra={"error_code": exc.error_code, "path": request.url.path},
            )

        details = exc.details if exc.http_status < 500 or not is_production(request) else None

        return create_error_response(
            error_code=exc.error_code,
            message=exc.message,
            status_code=exc.http_status,
            request_id=request_id,
            details=details,
            instance=request.url.path,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions, reported as internal errors."""
        request_id = get_request_id(request)

        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            extra={"path": request.url.path, "method": request.method},
            exc_info=True,
        )

        if is_production(request):
            message = "An internal error occurred"
            details = None
        else:
            message = f"{type(exc).__name__}: {exc}"
            details = {
                "exception_type": type(exc).__name__,
                "traceback": traceback.format_exc().split("\n")[-10:],
            }

        return create_error_response(
            error_code="INTERNAL_ERROR",
            message=message,
            status_code=500,
            request_id=request_id,
            details=details,
            instance=request.url.path,
        )


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    Converts exceptions raised outside route handlers (e.g. in other
    middleware) into RFC 7807 internal errors.
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> JSONResponse:
        try:
            return await call_next(request)
        except FtexException:
            raise
        except Exception as exc:
            logger.error(
                f"Middleware exception: {type(exc).__name__}: {exc}",
                extra={"path": request.url.path},
                exc_info=True,
            )

            message = (
                "An internal error occurred"
                if is_production(request)
                else f"{type(exc).__name__}: {exc}"
            )

            return create_error_response(
                error_code="INTERNAL_ERROR",
                message=message,
                status_code=500,
                request_id=get_request_id(request),
                instance=request.url.path,
            )
