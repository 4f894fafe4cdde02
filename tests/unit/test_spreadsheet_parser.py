"""
Unit tests for the spreadsheet parser.

Fixtures are built in memory with pandas or openpyxl.
"""

from io import BytesIO

import pandas as pd
import pytest
from openpyxl import Workbook, load_workbook

from exceptions import ExcelParseError
from parsers.spreadsheet_parser import (
    ParsedSpreadsheet,
    build_header_keys,
    parse_spreadsheet,
    placeholder_offset,
    serialize_workbook,
)
from tests.conftest import LINK_HEADER, build_workbook


def create_excel_file(rows: list[dict]) -> bytes:
    """Helper to create a single-sheet workbook with pandas."""
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Listings", index=False)
    return output.getvalue()


# ===================
# HEADER KEYS
# ===================

class TestBuildHeaderKeys:

    def test_named_headers_kept(self):
        assert build_header_keys(["STT", LINK_HEADER]) == ["STT", LINK_HEADER]

    def test_blank_headers_become_placeholders(self):
        assert build_header_keys(["A", None, "", "  ", "B"]) == ["A", "__EMPTY", "__EMPTY_1", "__EMPTY_2", "B"]

    def test_duplicate_headers_suffixed(self):
        assert build_header_keys(["Name", None, "Name", "", "Name"]) == [
            "Name", "__EMPTY", "Name_1", "__EMPTY_1", "Name_2",
        ]

    def test_suffix_skips_existing_header(self):
        assert build_header_keys(["Name", "Name_1", "Name"]) == ["Name", "Name_1", "Name_2"]

    def test_placeholder_skips_literal_header(self):
        assert build_header_keys(["__EMPTY", None, None]) == ["__EMPTY", "__EMPTY_1", "__EMPTY_2"]

    def test_literal_placeholder_after_blank(self):
        assert build_header_keys([None, "__EMPTY"]) == ["__EMPTY", "__EMPTY_1"]

    def test_keys_always_unique(self):
        keys = build_header_keys(["A", "A_1", "A", "A", None, "__EMPTY_1", None])

        assert len(set(keys)) == len(keys)

    def test_no_column_lost(self):
        content = build_workbook([
            ["Name", "Name_1", "Name"],
            ["a", "b", "https://shopee.vn/a-i.1.2"],
        ])

        parsed = parse_spreadsheet(content, "dupes.xlsx")

        assert parsed.rows[0] == {"Name": "a", "Name_1": "b", "Name_2": "https://shopee.vn/a-i.1.2"}
        assert parsed.column_for_key("Name_2") == 3

    def test_numeric_headers_stringified(self):
        assert build_header_keys([2024, 1.5]) == ["2024", "1.5"]


class TestPlaceholderOffset:

    @pytest.mark.parametrize("key,expected", [
        ("__EMPTY", 1),
        ("__EMPTY_1", 2),
        ("__EMPTY_3", 4),
        ("Trạng thái", 3),
        ("", 3),
    ])
    def test_offsets(self, key, expected):
        assert placeholder_offset(key) == expected


# ===================
# PARSING
# ===================

class TestParseSpreadsheet:

    def test_listing_layout(self, listing_workbook):
        parsed = parse_spreadsheet(listing_workbook, "listings.xlsx")

        assert isinstance(parsed, ParsedSpreadsheet)
        assert len(parsed.rows) == 4
        assert parsed.row_numbers == [2, 3, 4, 5]
        assert parsed.rows[0][LINK_HEADER] == "https://shopee.vn/foo-bar-i.111.222"
        assert parsed.rows[0]["__EMPTY"] == "note"

    def test_blank_cells_left_out(self, listing_workbook):
        parsed = parse_spreadsheet(listing_workbook, "listings.xlsx")

        assert parsed.rows[2] == {"STT": 3, "Tên shop": "Shop C"}

    def test_status_column_past_used_range(self, listing_workbook):
        parsed = parse_spreadsheet(listing_workbook, "listings.xlsx")

        # Fifth column regardless of whether the blank header cells were saved
        assert parsed.column_for_key("__EMPTY_3") == 5
        assert parsed.column_for_key(LINK_HEADER) == 3

    def test_pandas_fixture(self):
        content = create_excel_file([
            {"STT": 1, LINK_HEADER: "https://shopee.vn/a-i.1.2"},
            {"STT": 2, LINK_HEADER: "https://shopee.vn/b-i.3.4"},
        ])

        parsed = parse_spreadsheet(content, "export.xlsx")

        assert parsed.sheet_name == "Listings"
        assert [row[LINK_HEADER] for row in parsed.rows] == [
            "https://shopee.vn/a-i.1.2",
            "https://shopee.vn/b-i.3.4",
        ]

    def test_fully_blank_rows_skipped(self):
        content = build_workbook([
            ["STT", LINK_HEADER],
            [1, "https://shopee.vn/a-i.1.2"],
            [None, None],
            [3, "https://shopee.vn/b-i.3.4"],
        ])

        parsed = parse_spreadsheet(content, "gaps.xlsx")

        assert parsed.row_numbers == [2, 4]

    def test_offset_table(self):
        wb = Workbook()
        ws = wb.active
        ws.cell(row=3, column=2, value="STT")
        ws.cell(row=3, column=3, value=LINK_HEADER)
        ws.cell(row=4, column=2, value=1)
        ws.cell(row=4, column=3, value="https://shopee.vn/a-i.1.2")
        output = BytesIO()
        wb.save(output)

        parsed = parse_spreadsheet(output.getvalue(), "offset.xlsx")

        assert parsed.header_row == 3
        assert parsed.first_column == 2
        assert parsed.row_numbers == [4]
        assert parsed.column_for_key(LINK_HEADER) == 3
        assert parsed.column_for_key("__EMPTY_3") == 6

    def test_header_only(self):
        parsed = parse_spreadsheet(build_workbook([["STT", LINK_HEADER]]), "empty.xlsx")

        assert parsed.rows == []

    def test_formulas_preserved_in_workbook(self):
        content = build_workbook([
            ["STT", "Double"],
            [2, "=A2*2"],
        ])

        parsed = parse_spreadsheet(content, "formula.xlsx")

        assert parsed.worksheet["B2"].value == "=A2*2"

    def test_only_first_sheet_is_read(self):
        wb = Workbook()
        wb.active.title = "First"
        wb.active.append(["STT"])
        wb.active.append([1])
        second = wb.create_sheet("Second")
        second.append(["Other"])
        second.append(["ignored"])
        second.append(["ignored"])
        output = BytesIO()
        wb.save(output)

        parsed = parse_spreadsheet(output.getvalue(), "two.xlsx")

        assert parsed.sheet_name == "First"
        assert parsed.rows == [{"STT": 1}]


class TestParseErrors:

    @pytest.mark.parametrize("filename", ["old.xls", "data.csv", "notes.txt"])
    def test_unsupported_extension(self, filename, listing_workbook):
        with pytest.raises(ExcelParseError) as exc_info:
            parse_spreadsheet(listing_workbook, filename)

        assert exc_info.value.status_code == 422
        assert exc_info.value.code == "EXCEL_PARSE_ERROR"

    def test_empty_content(self):
        with pytest.raises(ExcelParseError, match="empty"):
            parse_spreadsheet(b"", "empty.xlsx")

    def test_corrupt_bytes(self):
        with pytest.raises(ExcelParseError) as exc_info:
            parse_spreadsheet(b"definitely not a zip archive", "broken.xlsx")

        assert exc_info.value.message == "Failed to read Excel file"

    def test_no_filename_still_parses(self, listing_workbook):
        parsed = parse_spreadsheet(listing_workbook)

        assert len(parsed.rows) == 4


class TestSerializeWorkbook:

    def test_round_trips_edits(self, listing_workbook):
        parsed = parse_spreadsheet(listing_workbook, "listings.xlsx")
        parsed.worksheet.cell(row=2, column=5).value = "x"

        content = serialize_workbook(parsed.workbook)

        reloaded = load_workbook(BytesIO(content))
        assert reloaded.active.cell(row=2, column=5).value == "x"
        assert reloaded.active.cell(row=1, column=3).value == LINK_HEADER
