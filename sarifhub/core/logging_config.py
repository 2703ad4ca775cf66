"""
Logging configuration for hub client interactions.

Components log through `logging.getLogger(__name__)` (or a logger passed to
them) and attach structured fields with `extra={"event": ...}`. This module
formats those records as JSON lines and wires handlers onto the package
logger only; the root logger is left alone.
"""

import json
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Any

PACKAGE_LOGGER_NAME = "sarifhub"


class HubEventFormatter(logging.Formatter):
    """Formatter that renders hub interaction records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log records with structured data."""
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "event"):
            log_entry["event"] = record.event

        # Request/response fields
        for field in ["hub", "method", "url", "status", "scheme"]:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Session fields
        for field in ["auth_method", "api", "hub_version"]:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if hasattr(record, "error"):
            log_entry["error"] = record.error
        if hasattr(record, "error_code"):
            log_entry["error_code"] = record.error_code

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_hub_logging(
    log_file: str | None = None,
    log_level: str = "INFO",
    enable_console: bool = True,
) -> logging.Logger:
    """
    Configure logging for hub interactions.

    Args:
        log_file: Path to a log file (optional, rotated daily)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_console: Whether to also log to stderr

    Returns:
        The configured package logger
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    logger.handlers.clear()

    formatter = HubEventFormatter()

    if log_file:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="D",
            interval=1,
            backupCount=7,
            encoding="utf-8",
            utc=False,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_hub_logger() -> logging.Logger:
    """Get the package logger."""
    return logging.getLogger(PACKAGE_LOGGER_NAME)
