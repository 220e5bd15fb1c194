"""Test fixtures and helpers for building sample spreadsheets.

Workbooks are built in memory with openpyxl (xlwt for legacy .xls) so tests
do not depend on binary files checked into the repository.

Example usage:
    from tests.fixtures import build_xlsx

    content = build_xlsx({"Sales": [["Region", "Amount"], ["East", 1000]]})
"""

import io
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import xlwt
from openpyxl import Workbook

Grid = Sequence[Sequence[Any]]


def build_xlsx(
    sheets: Mapping[str, Grid],
    number_formats: Mapping[str, Mapping[str, str]] | None = None,
) -> bytes:
    """Build an .xlsx workbook and return its bytes.

    Args:
        sheets: Sheet name to rows of cell values, in sheet order. ``None``
            leaves a cell empty.
        number_formats: Optional sheet name to ``{"B2": "0.00%"}`` overrides.

    Returns:
        The serialized workbook.
    """
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(list(row))
        for coordinate, fmt in (number_formats or {}).get(name, {}).items():
            ws[coordinate].number_format = fmt

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def save_xlsx(
    directory: Path,
    filename: str,
    sheets: Mapping[str, Grid],
    number_formats: Mapping[str, Mapping[str, str]] | None = None,
) -> Path:
    """Build a workbook and write it to ``directory / filename``."""
    path = directory / filename
    path.write_bytes(build_xlsx(sheets, number_formats))
    return path


def build_xls(
    sheets: Mapping[str, Grid],
    number_formats: Mapping[str, Mapping[tuple[int, int], str]] | None = None,
) -> bytes:
    """Build a legacy .xls workbook with xlwt and return its bytes.

    ``number_formats`` maps a sheet name to ``{(row, col): format}`` with
    zero-based coordinates.
    """
    wb = xlwt.Workbook()
    for name, rows in sheets.items():
        ws = wb.add_sheet(name)
        formats = (number_formats or {}).get(name, {})
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is None:
                    continue
                if (r, c) in formats:
                    ws.write(r, c, value, xlwt.easyxf(num_format_str=formats[(r, c)]))
                else:
                    ws.write(r, c, value)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(rows: Grid, delimiter: str = ",", encoding: str = "utf-8") -> bytes:
    """Serialize rows as CSV bytes."""
    lines = [delimiter.join("" if v is None else str(v) for v in row) for row in rows]
    return ("\n".join(lines) + "\n").encode(encoding)


# The three-sheet workbook used across ingestion and session tests.
SALES_SHEETS: dict[str, list[list[Any]]] = {
    "Sales": [
        ["Region", "Amount"],
        ["East", 1000],
        ["West", 2500],
    ],
    "Empty": [],
    "Targets": [
        ["Region", "Target"],
        ["East", 1200],
    ],
}

SALES_FORMATS = {"Sales": {"B2": '"$"#,##0', "B3": '"$"#,##0'}}


class StubAnalyst:
    """Analysis collaborator returning a canned answer and recording requests."""

    def __init__(self, answer: str | None = "Total sales are $3,500.") -> None:
        self.answer = answer
        self.requests: list[Any] = []
        self.analyze = AsyncMock(side_effect=self._analyze)

    async def _analyze(self, request: Any) -> str | None:
        self.requests.append(request)
        return self.answer
