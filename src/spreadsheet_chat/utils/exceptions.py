"""Centralized exception classes for spreadsheet chat.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details for consistent
error handling throughout the application.

Exception Hierarchy:
    SpreadsheetChatError (base)
    ├── SourceError
    │   ├── ReadError
    │   ├── FetchError
    │   ├── FileTooLargeError
    │   └── UnsupportedFormatError
    ├── IngestionError
    │   ├── WorkbookParseError
    │   └── EmptyDataError
    │       └── EmptyWorkbookError
    ├── ConversationError
    │   ├── NoDataError
    │   ├── DuplicateTurnError
    │   ├── SessionNotFoundError
    │   └── SessionExpiredError
    ├── AnalysisError
    └── ValidationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: Source (file / remote) errors
    - E2xxx: Ingestion and normalization errors
    - E3xxx: Conversation and session errors
    - E5xxx: External service errors
    - E9xxx: Internal/unexpected errors
    """

    # Source errors (E1xxx)
    FILE_READ_ERROR = "E1001"
    FILE_TOO_LARGE = "E1002"
    UNSUPPORTED_FORMAT = "E1003"
    REMOTE_FETCH_FAILED = "E1004"

    # Ingestion errors (E2xxx)
    WORKBOOK_PARSE_FAILED = "E2001"
    EMPTY_DATA = "E2002"
    EMPTY_WORKBOOK = "E2003"

    # Conversation errors (E3xxx)
    NO_DATA = "E3001"
    DUPLICATE_TURN = "E3002"
    SESSION_NOT_FOUND = "E3003"
    SESSION_EXPIRED = "E3004"
    INVALID_REQUEST = "E3005"

    # External service errors (E5xxx)
    ANALYSIS_FAILED = "E5001"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    This mixin allows exceptions to declare their appropriate HTTP status code
    for API responses. Subclasses should set the `http_status` class attribute.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception.

        Returns:
            HTTP status code appropriate for this error.
        """
        return self.http_status


class SpreadsheetChatError(Exception, HTTPStatusMixin):
    """Base exception for all spreadsheet chat errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Source Errors (E1xxx)
# =============================================================================


class SourceError(SpreadsheetChatError):
    """Base class for errors obtaining raw tabular bytes."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_READ_ERROR,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with source information.

        Args:
            message: Error message.
            error_code: Error code.
            source: Filename, path or remote identifier of the source.
            details: Additional details.
        """
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(message, error_code, details)
        self.source = source


class ReadError(SourceError):
    """Raised when a local file cannot be read or yields no data."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_READ_ERROR,
            source=source,
            details=details,
        )


class FetchError(SourceError):
    """Raised when a remote source is unreachable or answers with a failure."""

    http_status: int = 502

    def __init__(
        self,
        message: str,
        source: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the upstream status code.

        Args:
            message: Error message.
            source: Remote identifier or URL.
            status_code: HTTP status returned by the remote, if any.
            details: Additional details.
        """
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message=message,
            error_code=ErrorCode.REMOTE_FETCH_FAILED,
            source=source,
            details=details,
        )
        self.status_code = status_code


class FileTooLargeError(SourceError):
    """Raised when a file exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with size information.

        Args:
            file_size: Actual file size in bytes.
            max_size: Maximum allowed size in bytes.
            source: Optional filename.
            details: Additional details.
        """
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            source=source,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


class UnsupportedFormatError(SourceError):
    """Raised when a file extension is not a supported spreadsheet format."""

    def __init__(
        self,
        message: str,
        extension: str | None = None,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if extension:
            details["extension"] = extension
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            source=source,
            details=details,
        )
        self.extension = extension


# =============================================================================
# Ingestion Errors (E2xxx)
# =============================================================================


class IngestionError(SpreadsheetChatError):
    """Base class for errors turning raw bytes into a workbook."""

    http_status: int = 422

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.WORKBOOK_PARSE_FAILED,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(message, error_code, details)
        self.source = source


class WorkbookParseError(IngestionError):
    """Raised when the spreadsheet parser rejects the content."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.WORKBOOK_PARSE_FAILED,
            source=source,
            details=details,
        )


class EmptyDataError(IngestionError):
    """Raised when a source parses but yields zero usable sheets."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        error_code: ErrorCode = ErrorCode.EMPTY_DATA,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            source=source,
            details=details,
        )


class EmptyWorkbookError(EmptyDataError):
    """Raised when every sheet of a workbook was dropped during normalization."""

    def __init__(
        self,
        message: str = "Workbook appears to be empty or has no readable data",
        source: str | None = None,
        sheet_names: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the names of the sheets that were inspected.

        Args:
            message: Error message.
            source: Source filename or identifier.
            sheet_names: Names of the sheets that turned out empty.
            details: Additional details.
        """
        details = details or {}
        if sheet_names is not None:
            details["sheet_names"] = sheet_names
        super().__init__(
            message=message,
            source=source,
            error_code=ErrorCode.EMPTY_WORKBOOK,
            details=details,
        )


# =============================================================================
# Conversation Errors (E3xxx)
# =============================================================================


class ConversationError(SpreadsheetChatError):
    """Base class for conversation and session errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.NO_DATA,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, error_code, details)
        self.session_id = session_id


class NoDataError(ConversationError):
    """Raised when analysis is requested before any successful ingestion."""

    http_status: int = 409

    def __init__(
        self,
        message: str = "No workbook has been loaded yet",
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.NO_DATA,
            session_id=session_id,
            details=details,
        )


class DuplicateTurnError(ConversationError):
    """Raised when a turn id is already present in the conversation log."""

    http_status: int = 409

    def __init__(
        self,
        turn_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["turn_id"] = turn_id
        super().__init__(
            message=f"Turn already exists: {turn_id}",
            error_code=ErrorCode.DUPLICATE_TURN,
            details=details,
        )
        self.turn_id = turn_id


class SessionNotFoundError(ConversationError):
    """Raised when a chat session is not found."""

    http_status: int = 404

    def __init__(
        self,
        session_id: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message or f"Session not found: {session_id}",
            error_code=ErrorCode.SESSION_NOT_FOUND,
            session_id=session_id,
            details=details,
        )


class SessionExpiredError(ConversationError):
    """Raised when a chat session has been idle longer than its TTL."""

    http_status: int = 410

    def __init__(
        self,
        session_id: str,
        ttl_minutes: int | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if ttl_minutes:
            details["ttl_minutes"] = ttl_minutes
        super().__init__(
            message=message or f"Session has expired: {session_id}",
            error_code=ErrorCode.SESSION_EXPIRED,
            session_id=session_id,
            details=details,
        )


# =============================================================================
# External Service Errors (E5xxx)
# =============================================================================


class AnalysisError(SpreadsheetChatError):
    """Raised when the analysis collaborator call fails."""

    http_status: int = 502

    def __init__(
        self,
        message: str,
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with model information.

        Args:
            message: Error message.
            model: The LLM model that was called.
            details: Additional details.
        """
        details = details or {}
        if model:
            details["model"] = model
        super().__init__(message, ErrorCode.ANALYSIS_FAILED, details)
        self.model = model


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(SpreadsheetChatError):
    """General validation error for input data."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_REQUEST,
            details=details,
        )
        self.field = field
