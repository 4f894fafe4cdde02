"""
Custom exception classes for the application.

Per-link failures never reach this layer; these cover run-fatal
conditions (bad upload, missing run) and the standard API error body.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "EXCEL_PARSE_ERROR")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with the current state of a resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class ExcelParseError(ValidationError):
    """Uploaded spreadsheet could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="EXCEL_PARSE_ERROR",
            message=message,
            details=details
        )


class SpreadsheetWriteError(AppError):
    """Annotated workbook could not be serialized."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="SPREADSHEET_WRITE_ERROR",
            message=message,
            status_code=500,
            details=details
        )


# ===================
# CHECK RUN ERRORS
# ===================

class CheckRunNotFoundError(NotFoundError):
    """Check run unknown or expired."""

    def __init__(self, run_id: str):
        super().__init__(
            resource="Check run",
            identifier=run_id,
            code="CHECK_RUN_NOT_FOUND"
        )


class CheckRunNotReadyError(ConflictError):
    """Result requested before the run completed."""

    def __init__(self, run_id: str, status: str):
        super().__init__(
            code="CHECK_RUN_NOT_READY",
            message="Check run has no result to download",
            details={"id": run_id, "status": status}
        )


class RunCancelledError(AppError):
    """Run was cancelled by the user."""

    def __init__(self, run_id: Optional[str] = None):
        super().__init__(
            code="CHECK_RUN_CANCELLED",
            message="Check run was cancelled",
            status_code=409,
            details={"id": run_id} if run_id else None
        )
