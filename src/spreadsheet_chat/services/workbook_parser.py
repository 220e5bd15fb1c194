"""Spreadsheet parser turning raw bytes into named grids of typed cells.

Supports:
- XLSX via openpyxl (cached formula results, number formats preserved)
- XLS via xlrd with formatting info
- CSV via pandas with chardet encoding detection
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Any

import chardet
import pandas as pd
import xlrd
from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet
from xlrd.biffh import error_text_from_code

from spreadsheet_chat.raw_workbook import (
    RawCell,
    RawSheet,
    RawSource,
    RawWorkbook,
    SourceFormat,
)
from spreadsheet_chat.utils.exceptions import WorkbookParseError

logger = logging.getLogger(__name__)

CSV_SHEET_NAME = "Sheet1"


class WorkbookParser:
    """Parse spreadsheet bytes into a ``RawWorkbook``.

    The parser keeps every sheet, including empty ones; dropping empty sheets
    is the normalizer's job. Each grid is trimmed to its used range.
    """

    # Common encodings to try if chardet fails
    FALLBACK_ENCODINGS = ["utf-8", "cp1252", "latin-1"]

    # Minimum confidence threshold for encoding detection
    MIN_ENCODING_CONFIDENCE = 0.5

    def parse(self, source: RawSource) -> RawWorkbook:
        """Parse a raw source.

        Args:
            source: Bytes plus detected format.

        Returns:
            RawWorkbook with one RawSheet per sheet in source order.

        Raises:
            WorkbookParseError: If the content is not a readable spreadsheet.
        """
        if source.source_format == SourceFormat.XLSX:
            workbook = self._parse_xlsx(source)
        elif source.source_format == SourceFormat.XLS:
            workbook = self._parse_xls(source)
        else:
            workbook = self._parse_csv(source)

        logger.debug(
            f"Parsed {source.name}: format={source.source_format.value}, "
            f"sheets={workbook.sheet_names}"
        )
        return workbook

    # ------------------------------------------------------------------ #
    # XLSX
    # ------------------------------------------------------------------ #

    def _parse_xlsx(self, source: RawSource) -> RawWorkbook:
        try:
            workbook = load_workbook(
                filename=io.BytesIO(source.content), data_only=True
            )
        except Exception as e:
            raise WorkbookParseError(
                f"Failed to parse Excel workbook: {e}", source=source.name
            ) from e

        sheets = [
            RawSheet(name=sheet.title, rows=_trim_to_used_range(self._xlsx_rows(sheet)))
            for sheet in workbook.worksheets
        ]
        return RawWorkbook(
            sheets=sheets,
            metadata={"format": SourceFormat.XLSX.value, "sheet_names": workbook.sheetnames},
        )

    @staticmethod
    def _xlsx_rows(sheet: Worksheet) -> list[list[RawCell]]:
        rows: list[list[RawCell]] = []
        for row in sheet.iter_rows():
            rows.append(
                [
                    RawCell(
                        value=cell.value,
                        number_format=cell.number_format or "General",
                        is_date=bool(getattr(cell, "is_date", False)),
                    )
                    for cell in row
                ]
            )
        return rows

    # ------------------------------------------------------------------ #
    # XLS
    # ------------------------------------------------------------------ #

    def _parse_xls(self, source: RawSource) -> RawWorkbook:
        try:
            book = xlrd.open_workbook(
                file_contents=source.content, formatting_info=True
            )
        except Exception as e:
            raise WorkbookParseError(
                f"Failed to parse legacy Excel workbook: {e}", source=source.name
            ) from e

        sheets: list[RawSheet] = []
        for sheet in book.sheets():
            rows = [
                [self._xls_cell(book, sheet.cell(r, c)) for c in range(sheet.ncols)]
                for r in range(sheet.nrows)
            ]
            sheets.append(RawSheet(name=sheet.name, rows=_trim_to_used_range(rows)))

        return RawWorkbook(
            sheets=sheets,
            metadata={"format": SourceFormat.XLS.value, "sheet_names": book.sheet_names()},
        )

    @staticmethod
    def _xls_format(book: Any, xf_index: int | None) -> str:
        if xf_index is None:
            return "General"
        try:
            format_key = book.xf_list[xf_index].format_key
            return book.format_map[format_key].format_str or "General"
        except (IndexError, KeyError, AttributeError):
            return "General"

    def _xls_cell(self, book: Any, cell: Any) -> RawCell:
        ctype = cell.ctype
        number_format = self._xls_format(book, getattr(cell, "xf_index", None))

        if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
            return RawCell(value=None, number_format=number_format)
        if ctype == xlrd.XL_CELL_DATE:
            try:
                value = xlrd.xldate.xldate_as_datetime(cell.value, book.datemode)
            except (xlrd.xldate.XLDateError, ValueError, OverflowError):
                return RawCell(value=cell.value, number_format="General")
            return RawCell(value=value, number_format=number_format, is_date=True)
        if ctype == xlrd.XL_CELL_BOOLEAN:
            return RawCell(value=bool(cell.value), number_format=number_format)
        if ctype == xlrd.XL_CELL_ERROR:
            return RawCell(value=error_text_from_code.get(cell.value, "#ERR"))
        return RawCell(value=cell.value, number_format=number_format)

    # ------------------------------------------------------------------ #
    # CSV
    # ------------------------------------------------------------------ #

    def _parse_csv(self, source: RawSource) -> RawWorkbook:
        text = self._decode_content(source.content, source.name)
        delimiter = self._detect_csv_delimiter(text)
        metadata = {"format": SourceFormat.CSV.value, "delimiter": delimiter}

        try:
            # Ragged rows are padded to the widest row.
            width = max(
                (len(record) for record in csv.reader(io.StringIO(text), delimiter=delimiter)),
                default=0,
            )
        except csv.Error as e:
            raise WorkbookParseError(
                f"Failed to parse CSV: {e}", source=source.name
            ) from e
        if width == 0:
            return RawWorkbook(sheets=[RawSheet(name=CSV_SHEET_NAME)], metadata=metadata)

        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            ).fillna("")
        except pd.errors.EmptyDataError:
            return RawWorkbook(sheets=[RawSheet(name=CSV_SHEET_NAME)], metadata=metadata)
        except pd.errors.ParserError as e:
            raise WorkbookParseError(
                f"Failed to parse CSV: {e}", source=source.name
            ) from e

        rows = [
            [RawCell(value=value if value != "" else None) for value in record]
            for record in df.itertuples(index=False, name=None)
        ]
        return RawWorkbook(
            sheets=[RawSheet(name=CSV_SHEET_NAME, rows=_trim_to_used_range(rows))],
            metadata=metadata,
        )

    def _detect_encoding(self, content: bytes) -> str:
        if content.startswith(b"\xef\xbb\xbf"):
            return "utf-8-sig"

        result = chardet.detect(content)
        encoding = result.get("encoding")
        confidence = result.get("confidence", 0.0) or 0.0

        if encoding and confidence >= self.MIN_ENCODING_CONFIDENCE:
            logger.debug(f"Detected encoding: {encoding} (confidence: {confidence:.2f})")
            return str(encoding)
        return "utf-8"

    def _decode_content(self, content: bytes, source: str) -> str:
        encoding = self._detect_encoding(content)
        try:
            return content.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            for fallback in self.FALLBACK_ENCODINGS:
                try:
                    return content.decode(fallback)
                except (UnicodeDecodeError, LookupError):
                    continue
            raise WorkbookParseError(
                f"Failed to decode CSV with encoding {encoding}: {e}", source=source
            ) from e

    @staticmethod
    def _detect_csv_delimiter(content: str) -> str:
        try:
            dialect = csv.Sniffer().sniff(content[:8192], delimiters=",;\t|")
            return dialect.delimiter
        except csv.Error:
            logger.debug("CSV delimiter detection failed, defaulting to comma")
            return ","


def _is_blank(cell: RawCell) -> bool:
    return cell.value is None or (isinstance(cell.value, str) and cell.value == "")


def _trim_to_used_range(rows: list[list[RawCell]]) -> list[list[RawCell]]:
    """Cut a grid down to the bounding box of its non-empty cells."""
    occupied = [
        (r, c)
        for r, row in enumerate(rows)
        for c, cell in enumerate(row)
        if not _is_blank(cell)
    ]
    if not occupied:
        return []

    first_row = min(r for r, _ in occupied)
    last_row = max(r for r, _ in occupied)
    first_col = min(c for _, c in occupied)
    last_col = max(c for _, c in occupied)

    trimmed: list[list[RawCell]] = []
    for row in rows[first_row : last_row + 1]:
        window = row[first_col : last_col + 1]
        window.extend(RawCell(value=None) for _ in range(last_col + 1 - first_col - len(window)))
        trimmed.append(window)
    return trimmed
