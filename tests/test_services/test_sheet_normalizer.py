"""Tests for sheet normalization."""

from __future__ import annotations

from datetime import datetime

import pytest

from spreadsheet_chat.raw_workbook import RawCell, RawSheet, RawWorkbook
from spreadsheet_chat.services.sheet_normalizer import (
    SheetNormalizer,
    build_column_names,
)
from spreadsheet_chat.utils.exceptions import EmptyDataError, EmptyWorkbookError


def _sheet(name: str, rows: list[list[object]]) -> RawSheet:
    return RawSheet(
        name=name,
        rows=[
            [cell if isinstance(cell, RawCell) else RawCell(value=cell) for cell in row]
            for row in rows
        ],
    )


@pytest.fixture
def normalizer() -> SheetNormalizer:
    return SheetNormalizer()


class TestColumnNames:
    """Tests for header-to-column naming."""

    def test_plain_headers_kept(self) -> None:
        assert build_column_names(["Region", "Amount"]) == ["Region", "Amount"]

    def test_blank_headers_synthesized(self) -> None:
        assert build_column_names(["", "Name", " "]) == ["__EMPTY", "Name", "__EMPTY_1"]

    def test_duplicates_suffixed(self) -> None:
        assert build_column_names(["Name", "Name", "Name"]) == [
            "Name",
            "Name_1",
            "Name_2",
        ]

    def test_suffix_skips_existing_names(self) -> None:
        assert build_column_names(["A_1", "A", "A"]) == ["A_1", "A", "A_2"]


class TestNormalize:
    """Tests for workbook normalization."""

    def test_header_row_keys_records(self, normalizer: SheetNormalizer) -> None:
        raw = RawWorkbook(
            sheets=[_sheet("People", [["Name", "Age"], ["Ana", 31], ["Bo", 27]])]
        )

        (table,) = normalizer.normalize(raw, "people.xlsx")

        assert table.sheet_name == "People"
        assert table.columns == ("Name", "Age")
        assert [dict(row) for row in table.rows] == [
            {"Name": "Ana", "Age": "31"},
            {"Name": "Bo", "Age": "27"},
        ]

    def test_values_are_display_strings(self, normalizer: SheetNormalizer) -> None:
        raw = RawWorkbook(
            sheets=[
                _sheet(
                    "Mixed",
                    [
                        ["Amount", "Paid", "Due", "Rate"],
                        [
                            RawCell(1000, number_format='"$"#,##0'),
                            True,
                            RawCell(datetime(2024, 1, 15), "yyyy-mm-dd", is_date=True),
                            RawCell(0.125, number_format="0.0%"),
                        ],
                    ],
                )
            ]
        )

        (table,) = normalizer.normalize(raw, "mixed.xlsx")

        assert dict(table.rows[0]) == {
            "Amount": "$1,000",
            "Paid": "TRUE",
            "Due": "2024-01-15",
            "Rate": "12.5%",
        }
        for row in table.rows:
            assert all(isinstance(value, str) for value in row.values())

    def test_missing_cells_filled_with_empty_string(
        self, normalizer: SheetNormalizer
    ) -> None:
        raw = RawWorkbook(
            sheets=[_sheet("Ragged", [["A", "B", "C"], ["1"], ["2", None, "3"]])]
        )

        (table,) = normalizer.normalize(raw, "ragged.xlsx")

        assert dict(table.rows[0]) == {"A": "1", "B": "", "C": ""}
        assert dict(table.rows[1]) == {"A": "2", "B": "", "C": "3"}

    def test_blank_rows_skipped(self, normalizer: SheetNormalizer) -> None:
        raw = RawWorkbook(
            sheets=[_sheet("Gaps", [["A"], ["1"], [None], ["2"]])]
        )

        (table,) = normalizer.normalize(raw, "gaps.xlsx")

        assert [row["A"] for row in table.rows] == ["1", "2"]

    def test_empty_and_header_only_sheets_dropped(
        self, normalizer: SheetNormalizer
    ) -> None:
        raw = RawWorkbook(
            sheets=[
                _sheet("Sales", [["Region"], ["East"]]),
                _sheet("Empty", []),
                _sheet("HeaderOnly", [["Region", "Amount"]]),
                _sheet("Targets", [["Region"], ["West"]]),
            ]
        )

        tables = normalizer.normalize(raw, "book.xlsx")

        assert [table.sheet_name for table in tables] == ["Sales", "Targets"]

    def test_all_sheets_empty_raises(self, normalizer: SheetNormalizer) -> None:
        raw = RawWorkbook(sheets=[_sheet("A", []), _sheet("B", [["Only header"]])])

        with pytest.raises(EmptyWorkbookError) as exc_info:
            normalizer.normalize(raw, "blank.xlsx")

        assert isinstance(exc_info.value, EmptyDataError)
        assert exc_info.value.details["sheet_names"] == ["A", "B"]
        assert exc_info.value.source == "blank.xlsx"

    def test_column_order_preserved(self, normalizer: SheetNormalizer) -> None:
        raw = RawWorkbook(
            sheets=[_sheet("S", [["z", "a", "m"], ["1", "2", "3"]])]
        )

        (table,) = normalizer.normalize(raw, "s.xlsx")

        assert table.columns == ("z", "a", "m")
        assert list(table.rows[0]) == ["z", "a", "m"]
