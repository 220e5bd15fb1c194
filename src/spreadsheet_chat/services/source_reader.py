"""Acquisition of raw tabular bytes from local files and remote sheets.

This module provides functionality to read spreadsheet bytes from a path,
a binary handle or an in-memory buffer, and to fetch a published sheet as
CSV from its export endpoint. Formats are detected from the content type
reported by libmagic first and file extensions second.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import BinaryIO

import httpx
import magic

from spreadsheet_chat.config import settings
from spreadsheet_chat.raw_workbook import RawSource, SourceFormat
from spreadsheet_chat.utils.exceptions import (
    EmptyDataError,
    FetchError,
    FileTooLargeError,
    ReadError,
    UnsupportedFormatError,
)
from spreadsheet_chat.utils.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "EXTENSION_TO_FORMAT",
    "MIME_TO_FORMAT",
    "TabularSourceReader",
    "parse_sheet_id",
    "remote_source_name",
]

EXTENSION_TO_FORMAT: dict[str, SourceFormat] = {
    ".xlsx": SourceFormat.XLSX,
    ".xlsm": SourceFormat.XLSX,
    ".xls": SourceFormat.XLS,
    ".csv": SourceFormat.CSV,
}

# Content types that identify a spreadsheet format on their own.
MIME_TO_FORMAT: dict[str, SourceFormat] = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": SourceFormat.XLSX,
    "application/vnd.ms-excel.sheet.macroenabled.12": SourceFormat.XLSX,
    "application/vnd.ms-excel": SourceFormat.XLS,
    "text/csv": SourceFormat.CSV,
    "application/csv": SourceFormat.CSV,
}

# Generic containers; the extension decides which spreadsheet format they hold.
CONTAINER_MIME_TYPES: dict[str, SourceFormat] = {
    "application/zip": SourceFormat.XLSX,
    "application/x-ole-storage": SourceFormat.XLS,
    "application/cdfv2": SourceFormat.XLS,
}

# Content libmagic cannot classify; the extension decides.
UNDETERMINED_MIME_TYPES = frozenset({"application/octet-stream"})

_SHEET_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
_SHEET_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

SourceInput = str | Path | BinaryIO | bytes


def parse_sheet_id(sheet: str) -> str:
    """Extract a remote sheet id from a bare id or a full sheet URL.

    Args:
        sheet: Sheet id, or a URL containing ``/spreadsheets/d/<id>``.

    Returns:
        The sheet id.

    Raises:
        FetchError: If no id can be found.
    """
    candidate = sheet.strip()
    match = _SHEET_URL_RE.search(candidate)
    if match:
        return match.group(1)
    if _SHEET_ID_RE.match(candidate):
        return candidate
    raise FetchError(f"Not a valid sheet id or URL: {sheet!r}", source=sheet)


def remote_source_name(sheet_id: str) -> str:
    """Synthesize the display name used for a remote sheet."""
    return f"Sheet_{sheet_id}"


class TabularSourceReader:
    """Obtain raw spreadsheet bytes from local or remote sources."""

    def __init__(
        self,
        max_file_size: int | None = None,
        export_url_template: str | None = None,
        timeout_seconds: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            max_file_size: Size limit in bytes. Defaults to the configured limit.
            export_url_template: Remote CSV URL with an ``{id}`` placeholder.
            timeout_seconds: Timeout for the remote request.
            http_client: Optional shared client; a short-lived one is created
                per fetch when omitted.
        """
        self.max_file_size = max_file_size or settings.max_file_size_bytes
        self.export_url_template = (
            export_url_template or settings.remote_export_url_template
        )
        self.timeout_seconds = timeout_seconds or settings.remote_timeout_seconds
        self._http_client = http_client

    # ------------------------------------------------------------------ #
    # Local sources
    # ------------------------------------------------------------------ #

    def read_local(
        self, source: SourceInput, filename: str | None = None
    ) -> RawSource:
        """Read the full binary content of a local spreadsheet.

        Args:
            source: Filesystem path, open binary handle, or raw bytes.
            filename: Display name; required to detect CSV from handles/bytes.

        Returns:
            RawSource carrying the bytes and the detected format.

        Raises:
            ReadError: If the read fails or produces no data.
            FileTooLargeError: If the content exceeds the size limit.
            UnsupportedFormatError: If the format cannot be determined.
        """
        name, content = self._read_bytes(source, filename)

        if not content:
            raise ReadError("File is empty or could not be read", source=name)

        if len(content) > self.max_file_size:
            raise FileTooLargeError(
                file_size=len(content), max_size=self.max_file_size, source=name
            )

        source_format = self.detect_format(content, name)
        logger.info(
            "Read local spreadsheet",
            source=name,
            size_bytes=len(content),
            format=source_format.value,
        )
        return RawSource(name=name, content=content, source_format=source_format)

    def _read_bytes(
        self, source: SourceInput, filename: str | None
    ) -> tuple[str, bytes]:
        if isinstance(source, bytes):
            return filename or "upload", source

        if isinstance(source, (str, Path)):
            path = Path(source)
            name = filename or path.name
            if not path.is_file():
                raise ReadError(f"File not found: {path}", source=name)
            try:
                return name, path.read_bytes()
            except OSError as e:
                raise ReadError(f"Failed to read file: {e}", source=name) from e

        name = filename or Path(str(getattr(source, "name", "upload"))).name
        try:
            data = source.read()
        except (OSError, ValueError) as e:
            raise ReadError(f"Failed to read file: {e}", source=name) from e
        if isinstance(data, str):
            data = data.encode("utf-8")
        return name, data or b""

    @staticmethod
    def detect_format(content: bytes, filename: str | None = None) -> SourceFormat:
        """Detect the spreadsheet format from content and filename.

        The content type reported by libmagic wins when it names a
        spreadsheet format. Generic zip/OLE2 containers and plain text are
        accepted when the extension agrees, and the extension alone decides
        when the content cannot be classified.

        Args:
            content: Raw bytes.
            filename: Optional filename with extension.

        Returns:
            The detected SourceFormat.

        Raises:
            UnsupportedFormatError: If content and extension do not identify
                a supported format.
        """
        mime_type = TabularSourceReader._detect_mime_from_content(content)
        extension = Path(filename).suffix.lower() if filename else ""
        by_extension = EXTENSION_TO_FORMAT.get(extension)

        if mime_type in MIME_TO_FORMAT:
            return MIME_TO_FORMAT[mime_type]
        if mime_type is None or mime_type in UNDETERMINED_MIME_TYPES:
            if by_extension is not None:
                return by_extension
        elif by_extension is not None and (
            CONTAINER_MIME_TYPES.get(mime_type) is by_extension
            or (mime_type.startswith("text/") and by_extension is SourceFormat.CSV)
        ):
            return by_extension

        if by_extension is not None:
            raise UnsupportedFormatError(
                f"File content ({mime_type}) does not look like a {extension} file",
                extension=extension,
                source=filename,
            )

        supported = ", ".join(sorted(EXTENSION_TO_FORMAT))
        raise UnsupportedFormatError(
            f"Unsupported file format: {extension or '(none)'}. "
            f"Supported formats: {supported}",
            extension=extension or None,
            source=filename,
        )

    @staticmethod
    def _detect_mime_from_content(content: bytes) -> str | None:
        """Return the lower-cased MIME type libmagic reports, or None."""
        if not content:
            return None
        try:
            return magic.from_buffer(content, mime=True).lower()
        except magic.MagicException as e:
            logger.warning(
                "Magic detection failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    # ------------------------------------------------------------------ #
    # Remote sources
    # ------------------------------------------------------------------ #

    def build_export_url(self, sheet_id: str) -> str:
        return self.export_url_template.format(id=sheet_id)

    async def fetch_remote(self, sheet: str) -> RawSource:
        """Fetch a remote sheet through its CSV export endpoint.

        A single attempt is made; there are no retries.

        Args:
            sheet: Sheet id or sheet URL.

        Returns:
            RawSource named ``Sheet_{id}`` in CSV format.

        Raises:
            FetchError: On transport failure or a non-success status.
            FileTooLargeError: If the body exceeds the size limit.
            EmptyDataError: If the body is blank.
        """
        sheet_id = parse_sheet_id(sheet)
        name = remote_source_name(sheet_id)
        url = self.build_export_url(sheet_id)

        start = time.monotonic()
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    url, timeout=self.timeout_seconds, follow_redirects=True
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(
                        url, timeout=self.timeout_seconds, follow_redirects=True
                    )
        except httpx.HTTPError as e:
            logger.log_api_call(
                service="sheets-export",
                operation="fetch_csv",
                duration_seconds=time.monotonic() - start,
                success=False,
                error_message=str(e),
            )
            raise FetchError(
                f"Failed to fetch remote sheet: {e}", source=sheet_id
            ) from e

        duration = time.monotonic() - start
        if not response.is_success:
            logger.log_api_call(
                service="sheets-export",
                operation="fetch_csv",
                duration_seconds=duration,
                success=False,
                error_message=f"HTTP {response.status_code}",
            )
            raise FetchError(
                f"Remote sheet request failed with status {response.status_code}",
                source=sheet_id,
                status_code=response.status_code,
            )

        logger.log_api_call(
            service="sheets-export",
            operation="fetch_csv",
            duration_seconds=duration,
        )

        content = response.content
        if len(content) > self.max_file_size:
            raise FileTooLargeError(
                file_size=len(content), max_size=self.max_file_size, source=name
            )
        if not content.strip():
            raise EmptyDataError("Remote sheet returned no data", source=name)

        return RawSource(name=name, content=content, source_format=SourceFormat.CSV)
