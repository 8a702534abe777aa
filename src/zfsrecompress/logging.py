"""Structured logging for long-running recompression jobs."""

import json
import logging
import sys
from typing import Any, Dict, Optional

LOG_FORMATS = ("json", "text")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, friendly to log shippers and `jq`."""

    def format(self, record: logging.LogRecord) -> str:
        """Format LogRecord into JSON string."""
        log_obj: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_obj["error"] = self.formatException(record.exc_info)
            log_obj["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        if hasattr(record, "extra_fields"):
            log_obj["extra_fields"] = record.extra_fields

        return json.dumps(log_obj, default=str)


class TextFormatter(logging.Formatter):
    """Human readable single-line output for interactive terminals."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        return line


def setup_logging(
    logger_name: str = "zfsrecompress", level: str = "INFO", log_format: str = "json"
) -> logging.Logger:
    """
    Configure the tool's logger.

    Args:
        logger_name: Name of the logger
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" (default) or "text"

    Returns:
        Configured logger instance
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")

    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper()))

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    # Reconfigure our own stdout handler instead of stacking a new one per run
    handler = next((h for h in logger.handlers if getattr(h, "_zfsrecompress", False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler._zfsrecompress = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    handler.setFormatter(formatter)

    return logger


def log_with_context(
    logger: logging.Logger, level: str, message: str, extra: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error)
        message: Log message
        extra: Additional context fields, rendered under "extra_fields"
    """
    if extra is None:
        extra = {}

    log_method = getattr(logger, level.lower())
    log_method(message, extra={"extra_fields": extra})
