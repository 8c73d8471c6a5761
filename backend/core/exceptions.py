"""
Custom exceptions and handlers for consistent API error responses.

Services raise subclasses of ``TaxLedgerError``; each carries a
machine-readable ``error_code`` and the HTTP status it maps to, so routes
do not need to translate them one by one.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class TaxLedgerError(Exception):
    """Base exception for all domain errors"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_error_code: str = "TAX_LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ImmutableRecordError(TaxLedgerError):
    """Raised when code tries to modify an append-only record"""

    status_code = status.HTTP_409_CONFLICT
    default_error_code = "IMMUTABLE_RECORD"

    def __init__(self, record_type: str, record_id: Any, operation: str):
        super().__init__(
            f"{record_type} {record_id} is immutable and cannot be {operation}",
            details={
                "record_type": record_type,
                "record_id": str(record_id),
                "operation": operation,
            },
        )


class APIError(HTTPException):
    """Base API error with consistent structure"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class ValidationError(APIError):
    """Validation error"""

    def __init__(
        self, detail: str = "Validation failed", error_code: str = "VALIDATION_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
        )


async def handle_tax_ledger_error(request: Request, exc: TaxLedgerError) -> JSONResponse:
    """Render domain errors with their own status and code"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} at {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.error_code} at {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
            "path": str(request.url.path),
        },
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert ValueError to consistent API response"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": str(exc),
            "error_code": "VALIDATION_ERROR",
            "path": str(request.url.path),
        },
    )


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "path": str(request.url.path),
        },
        headers=exc.headers,
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(TaxLedgerError, handle_tax_ledger_error)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(APIError, handle_api_error)
