"""Dataclasses representing a parsed but not yet normalized workbook."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceFormat(str, Enum):
    """Byte layouts the parser understands."""

    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"


@dataclass(frozen=True)
class RawSource:
    """Raw tabular bytes plus what is known about where they came from."""

    name: str
    content: bytes
    source_format: SourceFormat


@dataclass
class RawCell:
    """A single cell as stored in the source, before display formatting."""

    value: Any
    number_format: str = "General"
    is_date: bool = False


@dataclass
class RawSheet:
    """A named 2-D grid of cells in source order."""

    name: str
    rows: list[list[RawCell]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)


@dataclass
class RawWorkbook:
    """All sheets of a parsed source, in source order."""

    sheets: list[RawSheet]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def sheet_names(self) -> list[str]:
        return [sheet.name for sheet in self.sheets]
