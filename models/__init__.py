"""
Models for validation and serialization.
"""

from models.base import BaseSchema
from models.link_check import (
    CheckOutcome,
    ProductIdentifier,
    ColumnMapping,
    ApiAttempt,
    ApiCheckResult,
    STATUS_EXISTS,
    STATUS_EMPTY,
    status_marker,
)
from models.check_run import (
    RunStatus,
    TERMINAL_STATUSES,
    RunProgress,
    AnnotationSummary,
    CheckRunResponse,
    CancelRunResponse,
)

__all__ = [
    # Base
    "BaseSchema",

    # Link check
    "CheckOutcome",
    "ProductIdentifier",
    "ColumnMapping",
    "ApiAttempt",
    "ApiCheckResult",
    "STATUS_EXISTS",
    "STATUS_EMPTY",
    "status_marker",

    # Check runs
    "RunStatus",
    "TERMINAL_STATUSES",
    "RunProgress",
    "AnnotationSummary",
    "CheckRunResponse",
    "CancelRunResponse",
]
