"""Normalized workbook snapshot shared by the chat session and the assembler.

A ``WorkbookAggregate`` is built once per successful ingestion and is never
mutated afterwards; a new upload replaces it wholesale.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from spreadsheet_chat.utils.exceptions import EmptyWorkbookError, ValidationError

Record = Mapping[str, str]


@dataclass(frozen=True)
class SheetTable:
    """One named table of rows sharing a common column set.

    Every value in ``rows`` is the cell's display string, e.g. ``"$1,000"``
    rather than ``1000``.
    """

    sheet_name: str
    columns: tuple[str, ...]
    rows: tuple[Record, ...]

    def __post_init__(self) -> None:
        columns = tuple(self.columns)
        column_set = set(columns)
        if len(column_set) != len(columns):
            raise ValidationError(
                f"Duplicate column names in sheet '{self.sheet_name}'",
                field="columns",
            )

        rows: list[Record] = []
        for index, row in enumerate(self.rows):
            unknown = set(row) - column_set
            if unknown:
                raise ValidationError(
                    f"Row {index} of sheet '{self.sheet_name}' has keys "
                    f"outside its columns: {sorted(unknown)}",
                    field="rows",
                )
            rows.append(MappingProxyType(dict(row)))

        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "rows", tuple(rows))

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain JSON-compatible structures."""
        return {
            "sheet_name": self.sheet_name,
            "columns": list(self.columns),
            "row_count": self.row_count,
            "rows": [dict(row) for row in self.rows],
        }


@dataclass(frozen=True)
class WorkbookAggregate:
    """All normalized sheets of one ingested source.

    Attributes:
        source_name: Original filename, or a synthesized name for remote sources.
        sheets: Sheets in source order. Never empty.
    """

    source_name: str
    sheets: tuple[SheetTable, ...]

    def __post_init__(self) -> None:
        sheets = tuple(self.sheets)
        if not sheets:
            raise EmptyWorkbookError(source=self.source_name, sheet_names=[])

        names = [sheet.sheet_name for sheet in sheets]
        if len(set(names)) != len(names):
            raise ValidationError(
                f"Duplicate sheet names in workbook '{self.source_name}'",
                field="sheets",
            )
        object.__setattr__(self, "sheets", sheets)

    @classmethod
    def from_sheets(
        cls, source_name: str, sheets: Iterable[SheetTable]
    ) -> WorkbookAggregate:
        return cls(source_name=source_name, sheets=tuple(sheets))

    @property
    def sheet_names(self) -> list[str]:
        return [sheet.sheet_name for sheet in self.sheets]

    @property
    def sheet_count(self) -> int:
        return len(self.sheets)

    @property
    def total_rows(self) -> int:
        return sum(sheet.row_count for sheet in self.sheets)

    def get_sheet(self, sheet_name: str) -> SheetTable:
        """Look up a sheet by name.

        Raises:
            KeyError: If no sheet has that name.
        """
        for sheet in self.sheets:
            if sheet.sheet_name == sheet_name:
                return sheet
        raise KeyError(sheet_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "sheets": [sheet.to_dict() for sheet in self.sheets],
        }
