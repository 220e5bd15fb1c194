"""Utilities package for spreadsheet chat.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from spreadsheet_chat.utils.exceptions import (
    AnalysisError,
    ConversationError,
    EmptyDataError,
    EmptyWorkbookError,
    ErrorCode,
    FetchError,
    HTTPStatusMixin,
    IngestionError,
    NoDataError,
    ReadError,
    SourceError,
    SpreadsheetChatError,
    ValidationError,
)
from spreadsheet_chat.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "AnalysisError",
    "ConversationError",
    "EmptyDataError",
    "EmptyWorkbookError",
    "ErrorCode",
    "FetchError",
    "HTTPStatusMixin",
    "IngestionError",
    "NoDataError",
    "ReadError",
    "SourceError",
    "SpreadsheetChatError",
    "ValidationError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
