"""
Check run orchestration and in-memory session store.

A run is created synchronously from an upload (so a corrupt file fails the
request itself), then executed in the background. Runs live in memory with
TTL expiration; single server, single user.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from config import Settings, settings as default_settings
from exceptions import (
    AppError,
    CheckRunNotFoundError,
    CheckRunNotReadyError,
    RunCancelledError,
)
from models.check_run import (
    AnnotationSummary,
    CheckRunResponse,
    RunProgress,
    RunStatus,
    TERMINAL_STATUSES,
)
from models.link_check import ColumnMapping
from parsers.spreadsheet_parser import (
    ParsedSpreadsheet,
    parse_spreadsheet,
    serialize_workbook,
)
from services.annotation_service import AnnotationService, get_annotation_service
from services.column_mapper import resolve_columns
from services.link_checker_service import LinkCheckerService, get_link_checker_service
from services.rate_limiter import CheckRunContext

logger = structlog.get_logger(__name__)

GENERIC_RUN_ERROR = "Lỗi khi xử lý file hoặc kiểm tra links."


@dataclass
class CheckRun:
    """One upload processed end to end."""
    run_id: str
    filename: Optional[str]
    context: CheckRunContext
    mapping: ColumnMapping
    sheet: Optional[ParsedSpreadsheet]
    status: RunStatus = RunStatus.PENDING
    progress: RunProgress = field(default_factory=RunProgress)
    summary: Optional[AnnotationSummary] = None
    error: Optional[str] = None
    result: Optional[bytes] = None
    created_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class CheckRunService:
    """Creates, executes and serves check runs."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        checker: Optional[LinkCheckerService] = None,
        annotation_service: Optional[AnnotationService] = None,
        context_factory: Optional[Callable[[str], CheckRunContext]] = None,
    ):
        self.config = config or default_settings
        self._checker = checker
        self._annotation_service = annotation_service
        self._context_factory = context_factory or (
            lambda run_id: CheckRunContext.create(self.config, run_id=run_id)
        )
        self._runs: dict[str, CheckRun] = {}
        self._lock = threading.Lock()

    @property
    def checker(self) -> LinkCheckerService:
        return self._checker or get_link_checker_service()

    @property
    def annotation_service(self) -> AnnotationService:
        return self._annotation_service or get_annotation_service()

    # ===================
    # LIFECYCLE
    # ===================

    def create_run(self, content: bytes, filename: Optional[str] = None) -> CheckRun:
        """
        Parse an upload and register a pending run.

        Raises:
            ExcelParseError: If the upload cannot be read (run-fatal)
        """
        sheet = parse_spreadsheet(content, filename)
        mapping = resolve_columns(
            sheet.rows,
            display_name=self.config.link_column_display_name,
            keywords=self.config.link_column_keywords,
            fallback_key=self.config.link_column_fallback_key,
            status_key=self.config.status_column_key,
        )

        run_id = str(uuid.uuid4())
        run = CheckRun(
            run_id=run_id,
            filename=filename,
            context=self._context_factory(run_id),
            mapping=mapping,
            sheet=sheet,
            expires_at=datetime.now() + timedelta(minutes=self.config.run_ttl_minutes),
        )

        with self._lock:
            self._cleanup_expired()
            self._runs[run_id] = run

        logger.info("check_run_created", run_id=run_id, filename=filename, rows=len(sheet.rows))
        return run

    def execute(self, run_id: str) -> CheckRun:
        """
        Annotate the run's spreadsheet and store the resulting workbook.

        Never raises for run failures; the outcome is recorded on the run.
        """
        run = self.get_run(run_id)
        if run.status != RunStatus.PENDING:
            logger.warning("check_run_not_pending", run_id=run_id, status=run.status.value)
            return run

        run.status = RunStatus.RUNNING
        logger.info("check_run_started", run_id=run_id)

        def _on_progress(current: int, total: int) -> None:
            run.progress = RunProgress(current=current, total=total)

        try:
            run.context.cancel_token.raise_if_cancelled()
            result = self.annotation_service.annotate(
                run.sheet,
                run.mapping,
                self.checker,
                run.context,
                on_progress=_on_progress,
            )
            run.result = serialize_workbook(result.workbook)
            run.summary = result.summary
            run.progress = RunProgress(
                current=result.summary.link_rows,
                total=result.summary.link_rows,
            )
            run.status = RunStatus.COMPLETED
            logger.info(
                "check_run_completed",
                run_id=run_id,
                links=result.summary.link_rows,
                existing=result.summary.existing
            )
        except RunCancelledError:
            run.status = RunStatus.CANCELLED
            logger.info("check_run_cancelled", run_id=run_id, progress=run.progress.current)
        except AppError as e:
            run.status = RunStatus.FAILED
            run.error = e.message
            logger.error("check_run_failed", run_id=run_id, code=e.code, error=e.message)
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = GENERIC_RUN_ERROR
            logger.error("check_run_failed", run_id=run_id, error=str(e), error_type=type(e).__name__)
        finally:
            run.finished_at = datetime.now()
            run.sheet = None  # Rows are discarded; only the serialized copy survives

        return run

    def get_run(self, run_id: str) -> CheckRun:
        """
        Get a run by id.

        Raises:
            CheckRunNotFoundError: If unknown or expired
        """
        with self._lock:
            run = self._runs.get(run_id)
            if run is not None and run.expires_at and datetime.now() > run.expires_at:
                del self._runs[run_id]
                run = None

        if run is None:
            raise CheckRunNotFoundError(run_id)
        return run

    def cancel_run(self, run_id: str) -> CheckRun:
        """Request cancellation; honored at the next row or network call."""
        run = self.get_run(run_id)
        if run.status in TERMINAL_STATUSES:
            return run
        run.context.cancel_token.cancel()
        logger.info("check_run_cancel_requested", run_id=run_id, status=run.status.value)
        return run

    def get_result(self, run_id: str) -> tuple[bytes, str]:
        """
        Annotated workbook bytes and download name.

        Raises:
            CheckRunNotFoundError: If unknown or expired
            CheckRunNotReadyError: If the run has not completed
        """
        run = self.get_run(run_id)
        if run.status != RunStatus.COMPLETED or run.result is None:
            raise CheckRunNotReadyError(run_id, run.status.value)
        return run.result, self.config.results_filename

    def to_response(self, run: CheckRun) -> CheckRunResponse:
        """Public view of a run."""
        return CheckRunResponse(
            run_id=run.run_id,
            status=run.status,
            filename=run.filename,
            link_column_key=run.mapping.link_column_key,
            status_column_key=run.mapping.status_column_key,
            progress=run.progress,
            progress_percent=run.progress.percent,
            summary=run.summary,
            missing=run.summary.missing if run.summary else None,
            error=run.error,
            download_url=(
                f"/api/link-check/runs/{run.run_id}/download"
                if run.status == RunStatus.COMPLETED else None
            ),
            created_at=run.created_at,
            finished_at=run.finished_at,
        )

    def _cleanup_expired(self) -> None:
        """Remove all expired runs. Caller holds the lock."""
        now = datetime.now()
        expired = [k for k, r in self._runs.items() if r.expires_at and now > r.expires_at]
        for k in expired:
            del self._runs[k]


# Singleton instance
_check_run_service: Optional[CheckRunService] = None


def get_check_run_service() -> CheckRunService:
    """Get or create CheckRunService instance."""
    global _check_run_service
    if _check_run_service is None:
        _check_run_service = CheckRunService()
    return _check_run_service
