"""Workbook ingestion: read, parse and normalize into a WorkbookAggregate."""

from __future__ import annotations

from spreadsheet_chat.raw_workbook import RawSource
from spreadsheet_chat.services.sheet_normalizer import SheetNormalizer
from spreadsheet_chat.services.source_reader import SourceInput, TabularSourceReader
from spreadsheet_chat.services.workbook_parser import WorkbookParser
from spreadsheet_chat.utils.exceptions import EmptyDataError, EmptyWorkbookError
from spreadsheet_chat.utils.logging import get_logger, timed_operation
from spreadsheet_chat.workbook import WorkbookAggregate

logger = get_logger(__name__)


class WorkbookIngestor:
    """Compose reader, parser and normalizer for local and remote sources.

    No partial aggregate is ever returned: any failure propagates as a typed
    error and the caller keeps whatever workbook it held before.
    """

    def __init__(
        self,
        reader: TabularSourceReader | None = None,
        parser: WorkbookParser | None = None,
        normalizer: SheetNormalizer | None = None,
    ) -> None:
        self.reader = reader or TabularSourceReader()
        self.parser = parser or WorkbookParser()
        self.normalizer = normalizer or SheetNormalizer()

    def ingest_file(
        self, source: SourceInput, filename: str | None = None
    ) -> WorkbookAggregate:
        """Ingest a local spreadsheet.

        Raises:
            ReadError: If the file cannot be read or is empty.
            EmptyWorkbookError: If no sheet has data rows.
        """
        raw_source = self.reader.read_local(source, filename=filename)
        return self.build_aggregate(raw_source)

    async def ingest_remote(self, sheet: str) -> WorkbookAggregate:
        """Ingest a remote sheet by id or URL.

        Raises:
            FetchError: If the remote request fails.
            EmptyDataError: If the body yields no usable sheet.
        """
        raw_source = await self.reader.fetch_remote(sheet)
        try:
            return self.build_aggregate(raw_source)
        except EmptyWorkbookError as e:
            raise EmptyDataError(
                "Remote sheet contains no data rows",
                source=raw_source.name,
                details=dict(e.details),
            ) from e

    def build_aggregate(self, raw_source: RawSource) -> WorkbookAggregate:
        """Parse and normalize an already-read source."""
        with timed_operation(logger, "ingest_workbook") as metrics:
            raw_workbook = self.parser.parse(raw_source)
            tables = self.normalizer.normalize(raw_workbook, raw_source.name)
            aggregate = WorkbookAggregate.from_sheets(raw_source.name, tables)
            metrics.sheets_processed = aggregate.sheet_count
            metrics.rows_processed = aggregate.total_rows

        logger.info(
            "Workbook ingested",
            source=aggregate.source_name,
            sheets=aggregate.sheet_count,
            rows=aggregate.total_rows,
        )
        return aggregate
