"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Spreadsheet
    ExcelParseError,
    SpreadsheetWriteError,

    # Check runs
    CheckRunNotFoundError,
    CheckRunNotReadyError,
    RunCancelledError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Spreadsheet
    "ExcelParseError",
    "SpreadsheetWriteError",

    # Check runs
    "CheckRunNotFoundError",
    "CheckRunNotReadyError",
    "RunCancelledError",
]
