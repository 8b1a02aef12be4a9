"""Structured logging utilities for pharmacy payment extraction.

This module provides:
- Request ID and document tracking using contextvars so every log line
  emitted while handling one upload can be correlated
- A structured logger that appends ``key=value`` pairs to messages
- Timing helpers for extraction runs

Usage:
    from pharmacy_payment_extraction.utils.logging import (
        get_logger,
        set_request_id,
        LogContext,
    )

    logger = get_logger(__name__)

    set_request_id("abc-123")

    with LogContext(document="march_schedule.xlsx", sheet="High Value"):
        logger.info("Header row located", row=10)

    with timed_operation(logger, "high_value_extraction") as metrics:
        metrics.rows_scanned = 120
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_document_var: ContextVar[str | None] = ContextVar("document", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    """Set the request ID in context, or clear it with None."""
    _request_id_var.set(request_id)


def get_document() -> str | None:
    """Get the name of the document currently being processed."""
    return _document_var.get()


def set_document(document: str | None) -> None:
    """Set the name of the document currently being processed."""
    _document_var.set(document)


def get_extra_context() -> dict[str, Any]:
    """Get additional context values.

    Returns:
        Dictionary of extra context values (empty when unset).
    """
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Replace the additional context values."""
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _request_id_var.set(None)
    _document_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Container for metrics collected during one extraction run.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        sheets_scanned: Number of sheets inspected.
        rows_scanned: Number of rows visited.
        items_extracted: Number of items produced.
        custom_metrics: Additional custom metrics.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    sheets_scanned: int = 0
    rows_scanned: int = 0
    items_extracted: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, omitting zero counters."""
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.sheets_scanned > 0:
            result["sheets_scanned"] = self.sheets_scanned
        if self.rows_scanned > 0:
            result["rows_scanned"] = self.rows_scanned
        if self.items_extracted > 0:
            result["items_extracted"] = self.items_extracted
        if self.custom_metrics:
            result["custom_metrics"] = self.custom_metrics
        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes messages with the active context.

    Adds ``request_id``, ``document`` and any extra context values as a
    bracketed prefix when they are set.
    """

    def format(self, record: logging.LogRecord) -> str:
        prefix_parts = []
        request_id = get_request_id()
        if request_id:
            prefix_parts.append(f"request_id={request_id}")
        document = get_document()
        if document:
            prefix_parts.append(f"document={document}")
        for key, value in get_extra_context().items():
            prefix_parts.append(f"{key}={value}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        original_msg = record.msg
        record.msg = f"{prefix}{original_msg}"
        try:
            return super().format(record)
        finally:
            record.msg = original_msg


class StructuredLogger:
    """Thin wrapper over :class:`logging.Logger` with keyword metadata.

    ``logger.info("Header row located", row=10, source="marker")`` logs
    ``Header row located | row=10, source=marker``.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)
        self._name = name

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying Python logger."""
        return self._logger

    def _build_message(self, message: str, **kwargs: Any) -> str:
        if not kwargs:
            return message
        parts = [f"{k}={v}" for k, v in kwargs.items()]
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
        """Log an error message with the active exception's traceback."""
        self._logger.exception(self._build_message(message, **kwargs))

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log performance metrics for a finished operation."""
        self.info(f"Performance: {metrics.operation}", **metrics.to_dict())

    def log_extraction_outcome(
        self,
        outcome: str,
        sheet_name: str | None,
        item_count: int,
        strategy: str | None = None,
    ) -> None:
        """Log the terminal outcome of a high value extraction.

        Args:
            outcome: Terminal outcome value (e.g. ``"extracted"``).
            sheet_name: Sheet the report was read from, if any.
            item_count: Number of items returned.
            strategy: Name of the strategy that produced the items.
        """
        kwargs: dict[str, Any] = {
            "outcome": outcome,
            "sheet": sheet_name,
            "items": item_count,
        }
        if strategy is not None:
            kwargs["strategy"] = strategy
        self.info("High value extraction finished", **kwargs)


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(document="schedule.xlsx", sheet="High Value"):
            logger.info("Scanning")  # prefixed with document and sheet
    """

    def __init__(self, **kwargs: Any) -> None:
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_document: str | None = None
        self._old_request_id: str | None = None

    def __enter__(self) -> "LogContext":
        self._old_context = get_extra_context().copy()
        self._old_document = get_document()
        self._old_request_id = get_request_id()

        new_context = dict(self._new_context)
        document = new_context.pop("document", None)
        request_id = new_context.pop("request_id", None)
        if document is not None:
            set_document(document)
        if request_id is not None:
            set_request_id(request_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)
        return self

    def __exit__(self, *args: Any) -> None:
        set_extra_context(self._old_context)
        set_document(self._old_document)
        set_request_id(self._old_request_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Time a block and log its metrics on exit.

    Args:
        logger: Logger to use for output.
        operation: Name of the operation.

    Yields:
        PerformanceMetrics instance the block may update.
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Configure root logging for the application.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
        use_structured_formatter: Whether to prefix messages with context.
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
    """Get a structured logger for a module.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.
    """
    return StructuredLogger(name)
