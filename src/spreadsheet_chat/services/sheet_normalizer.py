"""Normalize raw sheet grids into header-keyed tables of display strings."""

from __future__ import annotations

from spreadsheet_chat.raw_workbook import RawCell, RawSheet, RawWorkbook
from spreadsheet_chat.services.cell_formatter import format_cell
from spreadsheet_chat.utils.exceptions import EmptyWorkbookError
from spreadsheet_chat.utils.logging import get_logger, timed_operation
from spreadsheet_chat.workbook import SheetTable

logger = get_logger(__name__)

EMPTY_HEADER = "__EMPTY"


def build_column_names(header: list[str]) -> list[str]:
    """Turn header display strings into unique column names.

    Blank headers become ``__EMPTY``, ``__EMPTY_1``, ... and repeated names
    get ``_1``, ``_2`` suffixes in column order.

    Args:
        header: Display strings of the header row.

    Returns:
        Column names, one per header cell.
    """
    seen: dict[str, int] = {}
    taken: set[str] = set()
    columns: list[str] = []

    for text in header:
        base = text if text.strip() else EMPTY_HEADER
        name = base
        count = seen.get(base, 0)
        while name in taken:
            count += 1
            name = f"{base}_{count}"
        seen[base] = count
        taken.add(name)
        columns.append(name)

    return columns


class SheetNormalizer:
    """Convert a RawWorkbook into an ordered list of non-empty SheetTables.

    Row 0 of each sheet's used range is the header. Every following row that
    has at least one non-blank cell becomes a record mapping column names to
    display strings; missing cells are filled with ``""``.
    """

    def normalize(self, raw: RawWorkbook, source_name: str) -> list[SheetTable]:
        """Normalize every sheet in source order.

        Args:
            raw: Parsed workbook.
            source_name: Name used in errors and logs.

        Returns:
            Non-empty sheets in source order.

        Raises:
            EmptyWorkbookError: If every sheet has zero data rows.
        """
        tables: list[SheetTable] = []
        total = len(raw.sheets)

        with timed_operation(logger, "normalize_workbook") as metrics:
            for index, sheet in enumerate(raw.sheets, start=1):
                table = self.normalize_sheet(sheet)
                logger.log_progress(
                    "normalize_sheet",
                    index,
                    total,
                    details=f"{sheet.name}: {table.row_count if table else 0} rows",
                )
                if table is None:
                    logger.debug("Dropping empty sheet", sheet=sheet.name)
                    continue
                tables.append(table)
                metrics.rows_processed += table.row_count

            metrics.sheets_processed = len(tables)

        if not tables:
            raise EmptyWorkbookError(source=source_name, sheet_names=raw.sheet_names)

        return tables

    def normalize_sheet(self, sheet: RawSheet) -> SheetTable | None:
        """Normalize a single sheet, or return None when it has no data rows."""
        if len(sheet.rows) < 2:
            return None

        width = sheet.column_count
        header_cells = _pad(sheet.rows[0], width)
        columns = build_column_names([format_cell(cell) for cell in header_cells])

        records: list[dict[str, str]] = []
        for row in sheet.rows[1:]:
            values = [format_cell(cell) for cell in _pad(row, width)]
            if not any(value.strip() for value in values):
                continue
            records.append(dict(zip(columns, values, strict=True)))

        if not records:
            return None

        return SheetTable(
            sheet_name=sheet.name, columns=tuple(columns), rows=tuple(records)
        )


def _pad(row: list[RawCell], width: int) -> list[RawCell]:
    if len(row) >= width:
        return row[:width]
    return row + [RawCell(value=None) for _ in range(width - len(row))]
