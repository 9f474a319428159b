"""
Logging utilities for sitesync.

Provides human-readable and JSON log formatting plus an operation context
so that every line emitted during an export, import, dump or restore run
can be traced back to the run that produced it.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ["operation", "run_id", "batch", "artifact"]


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Operation context fields if present (operation, run_id, batch, artifact)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with operation context.

    Format: TIMESTAMP [LEVEL] LOGGER - MESSAGE [operation=X run_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        else:
            fmt = "[%(levelname)s] %(name)s - %(message)s"
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with operation context."""
        base = super().format(record)

        context_parts = []
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class _ContextFilter(logging.Filter):
    """Copies the active OperationContext onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in OperationContext.get_current().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure logging for the sitesync package.

    Only the ``sitesync`` logger is touched; the root logger is left to the
    embedding application.

    Args:
        level: Logging level (default: INFO)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable
    """
    package_logger = logging.getLogger("sitesync")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)

        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

        handler.setFormatter(formatter)
        handler.addFilter(_ContextFilter())
        package_logger.addHandler(handler)
        package_logger.propagate = False


class OperationContext:
    """
    Context manager for adding operation fields to log records.

    Example:
        >>> with OperationContext(operation="export", run_id="abc"):
        ...     logger.info("Exporting posts")  # Will include operation and run_id
    """

    _current: Optional["OperationContext"] = None

    def __init__(
        self,
        operation: Optional[str] = None,
        run_id: Optional[str] = None,
        **extra: Any,
    ):
        self.context = {
            "operation": operation,
            "run_id": run_id,
            **extra,
        }
        self.context = {k: v for k, v in self.context.items() if v is not None}
        self._previous: Optional["OperationContext"] = None

    def __enter__(self) -> "OperationContext":
        self._previous = OperationContext._current
        OperationContext._current = self
        return self

    def __exit__(self, *args) -> None:
        OperationContext._current = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current operation context."""
        if cls._current is None:
            return {}
        return cls._current.context.copy()
