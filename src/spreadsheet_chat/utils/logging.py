"""Structured logging for spreadsheet chat.

Log lines carry ``key=value`` fields after the message, and a bracketed
prefix with the correlation fields active for the current request or chat
session:

    [request_id=ab12 session_id=s-9 operation=ingest] Workbook ingested | sheets=2

Usage:
    from spreadsheet_chat.utils.logging import LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(session_id="s-9", operation="ingest"):
        logger.info("Workbook ingested", sheets=2)

    with timed_operation(logger, "normalize") as metrics:
        metrics.rows_processed = 120
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

# Fields attached to every log line in the current context.
_log_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "log_context", default=None
)

# Correlation ids lead the prefix, in this order.
_ID_FIELDS = ("request_id", "session_id")


def get_log_context() -> dict[str, Any]:
    """Return a copy of the fields active in the current context."""
    return dict(_log_context_var.get() or {})


def get_request_id() -> str | None:
    return get_log_context().get("request_id")


def set_request_id(request_id: str | None) -> None:
    """Set the id of the HTTP request being served, or clear it with None."""
    context = get_log_context()
    if request_id is None:
        context.pop("request_id", None)
    else:
        context["request_id"] = request_id
    _log_context_var.set(context)


def clear_context() -> None:
    _log_context_var.set(None)


@dataclass
class OperationMetrics:
    """Counters filled in while a timed operation runs."""

    operation: str
    started: float = field(default_factory=time.perf_counter)
    duration_seconds: float | None = None
    sheets_processed: int = 0
    rows_processed: int = 0

    def finish(self) -> None:
        self.duration_seconds = time.perf_counter() - self.started

    def to_dict(self) -> dict[str, Any]:
        """Fields worth logging; zero counters are left out."""
        result: dict[str, Any] = {"operation": self.operation}
        if self.duration_seconds is not None:
            result["duration_seconds"] = f"{self.duration_seconds:.3f}"
        if self.sheets_processed:
            result["sheets_processed"] = self.sheets_processed
        if self.rows_processed:
            result["rows_processed"] = self.rows_processed
        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes each message with the active context fields."""

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()
        fields = [f"{key}={context[key]}" for key in _ID_FIELDS if context.get(key)]
        fields.extend(
            f"{key}={value}" for key, value in context.items() if key not in _ID_FIELDS
        )
        if not fields:
            return super().format(record)

        original_msg = record.msg
        record.msg = f"[{' '.join(fields)}] {original_msg}"
        try:
            return super().format(record)
        finally:
            record.msg = original_msg


class StructuredLogger:
    """Logger wrapper that appends keyword arguments as ``key=value`` pairs."""

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _build_message(self, message: str, **kwargs: Any) -> str:
        if not kwargs:
            return message
        parts = [f"{key}={value}" for key, value in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._logger.exception(self._build_message(message, **kwargs))

    def log_progress(
        self,
        stage: str,
        current: int,
        total: int,
        details: str | None = None,
    ) -> None:
        """Log a debug line for step ``current`` of ``total`` in a stage."""
        percentage = (current / total * 100) if total > 0 else 0
        kwargs: dict[str, Any] = {
            "current": current,
            "total": total,
            "percentage": f"{percentage:.1f}%",
        }
        if details:
            kwargs["details"] = details
        self.debug(f"Progress: {stage}", **kwargs)

    def log_api_call(
        self,
        service: str,
        operation: str,
        duration_seconds: float,
        tokens_used: int | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> None:
        """Log one call to an outside service.

        Failed calls are logged at ERROR, successful ones at INFO.

        Args:
            service: Service name, e.g. ``"openai"`` or ``"sheets-export"``.
            operation: What was asked of the service.
            duration_seconds: Wall time of the call.
            tokens_used: Tokens consumed, for model calls.
            success: Whether the call succeeded.
            error_message: Failure reason when ``success`` is False.
        """
        kwargs: dict[str, Any] = {
            "service": service,
            "operation": operation,
            "duration_seconds": f"{duration_seconds:.3f}",
            "success": success,
        }
        if tokens_used is not None:
            kwargs["tokens_used"] = tokens_used
        if error_message:
            kwargs["error"] = error_message

        level = logging.INFO if success else logging.ERROR
        self._logger.log(level, self._build_message("API call", **kwargs))


class LogContext:
    """Attach fields to every log line emitted inside a ``with`` block.

    Nested blocks merge their fields. Leaving a block restores the fields
    that were active when it was entered. ``None`` values are ignored.
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = {key: value for key, value in fields.items() if value is not None}
        self._token: Token[dict[str, Any] | None] | None = None

    def __enter__(self) -> "LogContext":
        merged = get_log_context()
        merged.update(self._fields)
        self._token = _log_context_var.set(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context_var.reset(self._token)
            self._token = None


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[OperationMetrics, None, None]:
    """Time a block and log its metrics when it ends, even on error.

    Usage:
        with timed_operation(logger, "ingest_workbook") as metrics:
            metrics.sheets_processed = 3
    """
    metrics = OperationMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.info(f"Completed {operation}", **metrics.to_dict())


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Log level, as an int or a name like ``"INFO"``.
        format_string: Record format; a timestamped default when None.
        use_structured_formatter: Prefix messages with the context fields.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    formatter: logging.Formatter
    if use_structured_formatter:
        formatter = StructuredLogFormatter(format_string)
    else:
        formatter = logging.Formatter(format_string)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
