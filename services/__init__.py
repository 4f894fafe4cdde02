"""
Business logic services.

Each service handles one step of the link check pipeline.
"""

from services.url_extractor import extract_product_identifier, locale_for_host
from services.rate_limiter import (
    RateLimiter,
    DedupTracker,
    CancellationToken,
    CheckRunContext,
)
from services.link_checker_service import LinkCheckerService, get_link_checker_service
from services.column_mapper import resolve_columns
from services.annotation_service import (
    AnnotationService,
    AnnotationResult,
    get_annotation_service,
)
from services.check_run_service import CheckRunService, CheckRun, get_check_run_service

__all__ = [
    "extract_product_identifier",
    "locale_for_host",
    "RateLimiter",
    "DedupTracker",
    "CancellationToken",
    "CheckRunContext",
    "LinkCheckerService",
    "get_link_checker_service",
    "resolve_columns",
    "AnnotationService",
    "AnnotationResult",
    "get_annotation_service",
    "CheckRunService",
    "CheckRun",
    "get_check_run_service",
]
