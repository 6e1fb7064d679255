"""
Logging setup for the bowel sound analysis application.

Human-readable (optionally colored) console output for interactive use,
JSON records for log files and machine consumption.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Structured context passed via logger.info(..., extra={"extra": {...}})
        if getattr(record, "extra", None):
            log_obj["extra"] = record.extra

        return json.dumps(log_obj, default=str)


class ColoredFormatter(logging.Formatter):
    """Adds ANSI colors to the level name for terminal output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, "")
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers share the same record
            record.levelname = levelname


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,
    backup_count: int = 5,
    console_enabled: bool = True,
    colored: bool = True,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Console output format ("json" or "text")
        log_file: Optional file path; file output is always JSON
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep
        console_enabled: Whether to log to stdout
        colored: Colorize level names (text console output only)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    if log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif colored and console_enabled:
        formatter = ColoredFormatter(TEXT_FORMAT, DATE_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_FORMAT, DATE_FORMAT)

    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)


def setup_logging_from_config(
    config: Optional[Dict[str, Any]] = None, verbose: bool = False
) -> None:
    """Configure logging from the ``logging`` config section."""
    config = config or {}
    setup_logging(
        level="DEBUG" if verbose else config.get("level", "INFO"),
        log_format=config.get("format", "text"),
        log_file=config.get("file"),
        colored=config.get("colored", True),
        console_enabled=config.get("console", True),
    )


def get_logger(name: str) -> logging.Logger:
    """Return the logger with the given name."""
    return logging.getLogger(name)
