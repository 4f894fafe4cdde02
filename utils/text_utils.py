"""
Text utilities for spreadsheet headers and link cells.

Vietnamese headers may arrive NFC or NFD encoded depending on the tool
that saved the workbook, so comparisons normalize to NFC first.
"""

import re
import unicodedata
from typing import Any, Optional

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_label(value: Any) -> str:
    """
    Normalize a header/label for case-insensitive comparison.

    Keeps accents (keywords like "bán" depend on them):
    - "  Link tin bài đăng bán sản phẩm " → "link tin bài đăng bán sản phẩm"
    - None → ""

    Args:
        value: Raw header value (any type)

    Returns:
        NFC-normalized, stripped, casefolded string
    """
    if value is None:
        return ""

    text = unicodedata.normalize("NFC", str(value))
    return text.strip().casefold()


def format_link(link: Optional[str]) -> str:
    """
    Clean a link cell before parsing.

    - Strips whitespace
    - Removes trailing slashes
    - Adds https:// when the cell has no scheme ("shopee.vn/a-i.1.2")
    """
    if not link:
        return ""
    link = link.strip().rstrip("/")
    if link and not _SCHEME_RE.match(link):
        link = f"https://{link.lstrip('/')}"
    return link


def is_marketplace_link(value: Any, marketplace_name: str) -> bool:
    """True if the cell is a string that mentions the marketplace (case-insensitive)."""
    if not isinstance(value, str) or not value.strip():
        return False
    return marketplace_name.casefold() in value.casefold()
