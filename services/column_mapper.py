"""
Link/status column resolution.

Resolved once per dataset from the first row's keys; every row then uses
the same keys.
"""

from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog

from config import settings
from models.link_check import ColumnMapping
from utils.text_utils import normalize_label

logger = structlog.get_logger(__name__)


def find_link_column(
    keys: Iterable[Any],
    display_name: str,
    keywords: Sequence[str],
) -> Optional[str]:
    """
    Find the link column among row keys.

    1. exact case-insensitive match of display_name
    2. first key containing "link" and at least one keyword

    Returns:
        The original key, or None when neither rule matches
    """
    keys = [k for k in keys if k is not None and str(k) != ""]
    target = normalize_label(display_name)

    for key in keys:
        if normalize_label(key) == target:
            return key

    normalized_keywords = [normalize_label(k) for k in keywords if k]
    for key in keys:
        label = normalize_label(key)
        if "link" in label and any(keyword in label for keyword in normalized_keywords):
            return key

    return None


def resolve_columns(
    rows: Sequence[Mapping[str, Any]],
    display_name: Optional[str] = None,
    keywords: Optional[Sequence[str]] = None,
    fallback_key: Optional[str] = None,
    status_key: Optional[str] = None,
) -> ColumnMapping:
    """
    Resolve the link and status column keys for a dataset.

    Args:
        rows: Parsed rows (only the first row's keys are inspected)
        display_name: Exact link header to look for
        keywords: Keywords accepted next to "link" in a header
        fallback_key: Positional key used when nothing matches
        status_key: Fixed status key, written even if absent from the data

    Returns:
        ColumnMapping
    """
    display_name = display_name if display_name is not None else settings.link_column_display_name
    keywords = keywords if keywords is not None else settings.link_column_keywords
    fallback_key = fallback_key or settings.link_column_fallback_key
    status_key = status_key or settings.status_column_key

    sample_keys = list(rows[0].keys()) if rows else []

    link_key = find_link_column(sample_keys, display_name, keywords)
    if link_key is None:
        logger.info("link_column_fallback", fallback_key=fallback_key, available=len(sample_keys))
        link_key = fallback_key

    mapping = ColumnMapping(link_column_key=link_key, status_column_key=status_key)
    logger.info(
        "columns_resolved",
        link_column=mapping.link_column_key,
        status_column=mapping.status_column_key
    )
    return mapping
