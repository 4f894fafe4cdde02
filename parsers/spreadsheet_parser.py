"""
Spreadsheet parser for link-check uploads.

Reads the first sheet of an uploaded workbook into row records keyed by
header, the way a JSON sheet export does:

- first row of the used range is the header row
- blank headers become "__EMPTY", "__EMPTY_1", "__EMPTY_2", ...
- repeated headers get "_1", "_2" suffixes
- empty cells are left out of a row; fully blank rows are skipped

The editable workbook is kept alongside the rows so status values can be
written back into the original cells without touching their formatting.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Optional
import re

from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import structlog

from exceptions import ExcelParseError, SpreadsheetWriteError

logger = structlog.get_logger(__name__)

EMPTY_HEADER_PREFIX = "__EMPTY"
SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm")
DEFAULT_PLACEHOLDER_OFFSET = 3

_PLACEHOLDER_RE = re.compile(rf"^{EMPTY_HEADER_PREFIX}(?:_(\d+))?$")


@dataclass
class ParsedSpreadsheet:
    """First sheet of an uploaded workbook."""
    workbook: Workbook
    worksheet: Worksheet
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)
    column_indexes: dict[str, int] = field(default_factory=dict)
    header_row: int = 1
    first_column: int = 1

    @property
    def sheet_name(self) -> str:
        return self.worksheet.title

    def column_for_key(self, key: str) -> int:
        """
        Worksheet column (1-based) for a row key.

        Known headers map to their own column. Unknown placeholder keys
        fall back to their position: "__EMPTY_n" is column n + 1 counted
        from the first column (so "__EMPTY_3" is the fifth column).
        """
        if key in self.column_indexes:
            return self.column_indexes[key]
        return self.first_column + placeholder_offset(key)


def placeholder_offset(key: str) -> int:
    """Zero-based column offset implied by a placeholder key."""
    match = _PLACEHOLDER_RE.match(key or "")
    if not match:
        return DEFAULT_PLACEHOLDER_OFFSET
    number = int(match.group(1)) if match.group(1) else 0
    return number + 1


def build_header_keys(header_values: list[Any]) -> list[str]:
    """
    Turn raw header cells into unique row keys.

    ["Name", None, "Name", ""] -> ["Name", "__EMPTY", "Name_1", "__EMPTY_1"]
    ["Name", "Name_1", "Name"] -> ["Name", "Name_1", "Name_2"]

    Suffixes skip any key already taken, placeholders included.
    """
    keys: list[str] = []
    taken: set[str] = set()
    suffixes: dict[str, int] = {}
    empty_count = 0

    for value in header_values:
        text = "" if value is None else str(value)
        if text.strip() == "":
            key = EMPTY_HEADER_PREFIX if empty_count == 0 else f"{EMPTY_HEADER_PREFIX}_{empty_count}"
            empty_count += 1
            while key in taken:
                key = f"{EMPTY_HEADER_PREFIX}_{empty_count}"
                empty_count += 1
        else:
            key = text
            while key in taken:
                suffixes[text] = suffixes.get(text, 0) + 1
                key = f"{text}_{suffixes[text]}"
        taken.add(key)
        keys.append(key)

    return keys


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def parse_spreadsheet(content: bytes, filename: Optional[str] = None) -> ParsedSpreadsheet:
    """
    Parse an uploaded workbook.

    Args:
        content: Raw file bytes
        filename: Upload name, used to reject unsupported formats early

    Returns:
        ParsedSpreadsheet for the first sheet

    Raises:
        ExcelParseError: If the file is not a readable .xlsx/.xlsm workbook
    """
    logger.info("parsing_spreadsheet", filename=filename, size=len(content or b""))

    if filename and not filename.lower().endswith(SUPPORTED_EXTENSIONS):
        raise ExcelParseError(
            message="Only .xlsx and .xlsm files are supported",
            details={"filename": filename, "supported": list(SUPPORTED_EXTENSIONS)}
        )

    if not content:
        raise ExcelParseError(message="Uploaded file is empty", details={"filename": filename})

    keep_vba = bool(filename and filename.lower().endswith(".xlsm"))

    try:
        workbook = load_workbook(BytesIO(content), keep_vba=keep_vba)
        # Cached formula results for reading; the editable copy keeps formulas
        values_workbook = load_workbook(BytesIO(content), data_only=True)
    except Exception as e:
        logger.error("spreadsheet_read_failed", filename=filename, error=str(e))
        raise ExcelParseError(
            message="Failed to read Excel file",
            details={"filename": filename, "original_error": str(e)}
        )

    worksheet = workbook.worksheets[0]
    values_sheet = values_workbook.worksheets[0]

    header_row = worksheet.min_row
    first_column = worksheet.min_column
    last_column = worksheet.max_column

    sheet_rows = values_sheet.iter_rows(
        min_row=header_row,
        max_row=worksheet.max_row,
        min_col=first_column,
        max_col=last_column,
        values_only=True,
    )

    header_values = list(next(sheet_rows, ()))
    keys = build_header_keys(header_values)

    parsed = ParsedSpreadsheet(
        workbook=workbook,
        worksheet=worksheet,
        column_indexes={key: first_column + offset for offset, key in enumerate(keys)},
        header_row=header_row,
        first_column=first_column,
    )

    for row_number, values in enumerate(sheet_rows, start=header_row + 1):
        record = {
            key: value
            for key, value in zip(keys, values)
            if not _is_blank(value)
        }
        if not record:
            continue
        parsed.rows.append(record)
        parsed.row_numbers.append(row_number)

    logger.info(
        "spreadsheet_parsed",
        sheet=parsed.sheet_name,
        rows=len(parsed.rows),
        columns=len(keys)
    )
    return parsed


def serialize_workbook(workbook: Workbook) -> bytes:
    """
    Save a workbook to bytes.

    Raises:
        SpreadsheetWriteError: If openpyxl cannot write the workbook
    """
    output = BytesIO()
    try:
        workbook.save(output)
    except Exception as e:
        logger.error("spreadsheet_write_failed", error=str(e))
        raise SpreadsheetWriteError(
            message="Failed to write annotated workbook",
            details={"original_error": str(e)}
        )
    return output.getvalue()
