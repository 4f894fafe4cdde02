"""
Spreadsheet parsers module.
"""

from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    serialize_workbook,
    ParsedSpreadsheet,
)

__all__ = [
    "parse_spreadsheet",
    "serialize_workbook",
    "ParsedSpreadsheet",
]
