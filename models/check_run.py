"""
Check run schemas.

A check run is one upload processed end to end. It lives in memory only
and expires after settings.run_ttl_minutes.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from models.base import BaseSchema


class RunStatus(str, Enum):
    """Lifecycle of a check run."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}


class RunProgress(BaseModel):
    """Marketplace links checked so far."""

    current: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.current / self.total * 100, 1)


class AnnotationSummary(BaseModel):
    """Counts shown next to the download button."""

    total_rows: int = Field(default=0, ge=0)
    link_rows: int = Field(default=0, ge=0, description="Rows holding a marketplace link")
    existing: int = Field(default=0, ge=0, description="Rows marked 'x'")

    @property
    def missing(self) -> int:
        return self.link_rows - self.existing


class CheckRunResponse(BaseSchema):
    """Public view of a check run."""

    run_id: str
    status: RunStatus
    filename: Optional[str] = Field(None, description="Original upload name")
    link_column_key: Optional[str] = None
    status_column_key: Optional[str] = None
    progress: RunProgress = Field(default_factory=RunProgress)
    progress_percent: float = 0.0
    summary: Optional[AnnotationSummary] = None
    missing: Optional[int] = None
    error: Optional[str] = None
    download_url: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None


class CancelRunResponse(BaseModel):
    """Acknowledgement of a cancellation request."""

    run_id: str
    status: RunStatus
    cancel_requested: bool
