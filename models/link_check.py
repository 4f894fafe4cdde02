"""
Link check value objects.

ProductIdentifier and ColumnMapping are derived, read-only values
recreated per URL / per dataset. CheckOutcome is the tri-state verdict
returned by the liveness checker.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CheckOutcome(str, Enum):
    """Result of a liveness check."""

    EXISTS = "EXISTS"
    NOT_EXISTS = "NOT_EXISTS"
    INCONCLUSIVE = "INCONCLUSIVE"  # Triggers fallback, never written to a row


# Status markers written into the spreadsheet
STATUS_EXISTS = "x"
STATUS_EMPTY = ""


def status_marker(outcome: CheckOutcome) -> str:
    """Map a check outcome to the cell value written into the status column."""
    return STATUS_EXISTS if outcome == CheckOutcome.EXISTS else STATUS_EMPTY


@dataclass(frozen=True)
class ProductIdentifier:
    """Shop/item pair parsed from a marketplace product URL."""

    shop_id: str
    item_id: str
    locale: str

    @property
    def key(self) -> str:
        """Dedup key. Locale is deliberately not part of it."""
        return f"{self.shop_id}-{self.item_id}"


@dataclass(frozen=True)
class ColumnMapping:
    """Row keys resolved once per dataset."""

    link_column_key: str
    status_column_key: str


@dataclass
class ApiAttempt:
    """One item API request made while checking an identifier."""

    attempt: int
    endpoint: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    outcome: Optional[CheckOutcome] = None


@dataclass
class ApiCheckResult:
    """Outcome of the API path plus every attempt made to reach it."""

    outcome: CheckOutcome
    attempts: list[ApiAttempt]
    skipped_duplicate: bool = False

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)
