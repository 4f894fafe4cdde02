"""
Row annotation.

Walks the parsed rows in order, checks every marketplace link and writes
"x" (live) or "" (anything else) into both the row record and the
worksheet cell. Rows are processed strictly one after another so the
run's rate limiter is respected.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from openpyxl.workbook.workbook import Workbook
import structlog

from config import Settings, settings as default_settings
from models.check_run import AnnotationSummary
from models.link_check import (
    ColumnMapping,
    STATUS_EMPTY,
    STATUS_EXISTS,
    status_marker,
)
from parsers.spreadsheet_parser import ParsedSpreadsheet
from services.link_checker_service import LinkCheckerService
from services.rate_limiter import CheckRunContext
from services.url_extractor import extract_product_identifier
from utils.text_utils import format_link, is_marketplace_link

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
Extractor = Callable[..., Any]


@dataclass
class AnnotationResult:
    """Annotated rows and workbook for one run."""
    rows: list[dict[str, Any]]
    workbook: Workbook
    summary: AnnotationSummary


class AnnotationService:
    """Drives the link checker across all rows of a spreadsheet."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def annotate(
        self,
        sheet: ParsedSpreadsheet,
        mapping: ColumnMapping,
        checker: LinkCheckerService,
        context: CheckRunContext,
        extractor: Extractor = extract_product_identifier,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnnotationResult:
        """
        Annotate every row of the sheet.

        Args:
            sheet: Parsed first sheet (rows are updated in place)
            mapping: Resolved link/status keys
            checker: Liveness checker
            context: Run-scoped limiter, dedup set and cancellation token
            extractor: URL -> ProductIdentifier function
            on_progress: Called with (checked, total) after each link row

        Returns:
            AnnotationResult

        Raises:
            RunCancelledError: If the run is cancelled between rows or
                before a network call
        """
        marketplace = self.config.marketplace_name
        link_key = mapping.link_column_key
        status_key = mapping.status_column_key
        worksheet = sheet.worksheet
        status_column = sheet.column_for_key(status_key)

        link_total = sum(
            1 for row in sheet.rows if is_marketplace_link(row.get(link_key), marketplace)
        )
        summary = AnnotationSummary(total_rows=len(sheet.rows), link_rows=link_total)

        logger.info(
            "annotation_started",
            rows=len(sheet.rows),
            links=link_total,
            link_column=link_key,
            status_column=status_key,
            status_column_index=status_column
        )

        checked = 0
        for row, row_number in zip(sheet.rows, sheet.row_numbers):
            context.cancel_token.raise_if_cancelled()

            link = row.get(link_key)
            status = STATUS_EMPTY

            if is_marketplace_link(link, marketplace):
                url = format_link(link)
                identifier = extractor(url, self.config.base_locale)
                outcome = checker.check(identifier, url, context)
                status = status_marker(outcome)
                checked += 1

                logger.info(
                    "link_checked",
                    row=row_number,
                    progress=f"{checked}/{link_total}",
                    outcome=outcome.value,
                    status=status
                )
                if on_progress:
                    on_progress(checked, link_total)

            row[status_key] = status
            if status == STATUS_EXISTS:
                summary.existing += 1

            # Only the value changes; the cell keeps its style
            worksheet.cell(row=row_number, column=status_column).value = status

        logger.info(
            "annotation_finished",
            links=link_total,
            existing=summary.existing,
            missing=summary.missing
        )
        return AnnotationResult(rows=sheet.rows, workbook=sheet.workbook, summary=summary)


# Singleton instance
_annotation_service: Optional[AnnotationService] = None


def get_annotation_service() -> AnnotationService:
    """Get or create AnnotationService instance."""
    global _annotation_service
    if _annotation_service is None:
        _annotation_service = AnnotationService()
    return _annotation_service
