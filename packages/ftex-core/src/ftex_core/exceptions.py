"""Unified exception hierarchy for FTeX.

All FTeX-specific exceptions inherit from FtexException, enabling:
- Consistent error handling across packages
- Proper HTTP status code mapping in the API layer
- Structured error responses with error codes

Usage:
    from ftex_core.exceptions import FtexException, FtexInvalidRequestError

    try:
        offer = await offers.consume_offer(principal, sealed_offer_id)
    except FtexException as e:
        return e.to_dict()

All exceptions have:
- error_code: Machine-readable error code (e.g., "INVALID_REQUEST")
- http_status: Appropriate HTTP status code for API responses
- message: Human-readable error message, safe to show to clients
- details: Optional additional context dictionary
- to_dict(): Convert to API response format
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Type

logger = logging.getLogger(__name__)

# Client-facing messages for failures the caller can only retry or fix on their side
RETRY_MESSAGE = "please retry your request later"
FUNDS_MESSAGE = "please check you have both currency accounts and enough funds"


class FtexException(Exception):
    """Base exception for all FTeX errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "FTEX_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class FtexInvalidRequestError(FtexException):
    """Malformed input, wrong precision, unknown currency or undecryptable token."""

    error_code = "INVALID_REQUEST"
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class FtexForbiddenError(FtexException):
    """Missing or invalid principal, or principal mismatch on an offer."""

    error_code = "FORBIDDEN"
    http_status = 403


class FtexNotFoundError(FtexException):
    """Requested resource not found."""

    error_code = "NOT_FOUND"
    http_status = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["resource_type"] = resource_type
        details["resource_id"] = resource_id
        super().__init__(message or f"{resource_type} '{resource_id}' not found", details=details)


class FtexOfferExpiredError(FtexException):
    """Offer is no longer available: expired, consumed or never issued."""

    error_code = "OFFER_EXPIRED"
    http_status = 408

    def __init__(self, message: str = "exchange offer has expired", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class FtexAlreadyExistsError(FtexException):
    """Resource already exists."""

    error_code = "ALREADY_EXISTS"
    http_status = 409


class FtexPreconditionFailedError(FtexException):
    """Ledger rejected the operation for business reasons."""

    error_code = "PRECONDITION_FAILED"
    http_status = 412


# =============================================================================
# Upstream & Server Errors (5xx)
# =============================================================================

class FtexInternalError(FtexException):
    """Invariant violation or unexpected shape from a collaborator."""

    error_code = "INTERNAL_ERROR"
    http_status = 500


class FtexUpstreamError(FtexException):
    """Rate oracle failure or non-success response."""

    error_code = "UPSTREAM_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str = RETRY_MESSAGE,
        provider: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, details=details)


class FtexTransientUpstreamError(FtexException):
    """Cache or ledger transport failure where a retry is meaningful."""

    error_code = "TRANSIENT_UPSTREAM"
    http_status = 503

    def __init__(self, message: str = RETRY_MESSAGE, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class FtexCacheUnavailableError(FtexTransientUpstreamError):
    """Offer cache backing store unreachable."""

    error_code = "CACHE_UNAVAILABLE"


# =============================================================================
# Exception Registry
# =============================================================================

EXCEPTION_REGISTRY: dict[str, Type[FtexException]] = {
    "FTEX_ERROR": FtexException,
    "INVALID_REQUEST": FtexInvalidRequestError,
    "FORBIDDEN": FtexForbiddenError,
    "NOT_FOUND": FtexNotFoundError,
    "OFFER_EXPIRED": FtexOfferExpiredError,
    "ALREADY_EXISTS": FtexAlreadyExistsError,
    "PRECONDITION_FAILED": FtexPreconditionFailedError,
    "INTERNAL_ERROR": FtexInternalError,
    "UPSTREAM_ERROR": FtexUpstreamError,
    "TRANSIENT_UPSTREAM": FtexTransientUpstreamError,
    "CACHE_UNAVAILABLE": FtexCacheUnavailableError,
}


def get_exception_class(error_code: str) -> Type[FtexException]:
    """Get exception class by error code, falling back to the base class."""
    return EXCEPTION_REGISTRY.get(error_code, FtexException)


__all__ = [
    "FtexException",
    "FtexInvalidRequestError",
    "FtexForbiddenError",
    "FtexNotFoundError",
    "FtexOfferExpiredError",
    "FtexAlreadyExistsError",
    "FtexPreconditionFailedError",
    "FtexInternalError",
    "FtexUpstreamError",
    "FtexTransientUpstreamError",
    "FtexCacheUnavailableError",
    "EXCEPTION_REGISTRY",
    "get_exception_class",
    "RETRY_MESSAGE",
    "FUNDS_MESSAGE",
]
