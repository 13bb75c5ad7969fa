"""Logging setup for applications embedding the patient directory.

Library modules only call ``logging.getLogger(__name__)``; this module is for
the application entry point that wants console and file output.

Features:
- Colour console lines or JSON lines
- Optional rotating JSON log file
- Correlation id and per-thread context (user, operation) on every record
"""

import json
import logging
import sys
import threading
import uuid
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any

# Attributes of a bare LogRecord; anything else on a record is "extra"
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

# Extras shown on console lines, in this order
_CONSOLE_CONTEXT = ("user_id", "operation", "requirement", "patient_id")

_handlers: list[logging.Handler] = []
_lock = threading.Lock()


class CorrelationIdFilter(logging.Filter):
    """Stamps ``correlation_id`` on records that do not carry one."""

    def __init__(self, correlation_id: str | None = None):
        super().__init__()
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = self.correlation_id
        return True


class ContextFilter(logging.Filter):
    """Copies the current thread's logging context onto each record."""

    def __init__(self):
        super().__init__()
        self.context_data = threading.local()

    def set_context(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            setattr(self.context_data, key, value)

    def clear_context(self) -> None:
        self.context_data.__dict__.clear()

    def get_context(self) -> dict[str, Any]:
        return self.context_data.__dict__.copy()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.get_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "thread_name": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str, separators=(",", ":"))


class ConsoleFormatter(logging.Formatter):
    """Colour console formatter: LEVEL | time | logger | CID | [context] | message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        parts = [f"{color}{self.BOLD}{record.levelname}{self.RESET}", timestamp, record.name]

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            parts.append(f"CID:{correlation_id[:8]}")

        context_parts = [
            f"{attr}:{getattr(record, attr)}"
            for attr in _CONSOLE_CONTEXT
            if getattr(record, attr, None) is not None
        ]
        if context_parts:
            parts.append(f"[{', '.join(context_parts)}]")

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        parts.append(message)

        return " | ".join(parts)


_context_filter = ContextFilter()


def configure_logging(
    level: str = "INFO",
    structured: bool = False,
    file_path: str | None = None,
    correlation_id: str | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Calling again replaces the handlers this function installed earlier;
    handlers added by others are left alone.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: JSON lines on the console instead of colour lines
        file_path: Rotating JSON log file; None disables file logging
        correlation_id: Id stamped on every record; generated if omitted
        file_max_bytes: Size at which the file rotates
        file_backup_count: Rotated files kept
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    correlation_filter = CorrelationIdFilter(correlation_id)

    with _lock:
        root_logger = logging.getLogger()
        for handler in _handlers:
            root_logger.removeHandler(handler)
            handler.close()
        _handlers.clear()

        root_logger.setLevel(numeric_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(JsonFormatter() if structured else ConsoleFormatter())
        _handlers.append(console_handler)

        if file_path:
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=file_max_bytes,
                backupCount=file_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(JsonFormatter())
            _handlers.append(file_handler)

        for handler in _handlers:
            handler.setLevel(numeric_level)
            handler.addFilter(correlation_filter)
            handler.addFilter(_context_filter)
            root_logger.addHandler(handler)


def configure_from_settings(config=None) -> None:
    """configure_logging() driven by Settings.log_* fields."""
    if config is None:
        from src.config.settings import settings as config

    configure_logging(
        level=config.log_level,
        structured=config.log_structured,
        file_path=config.log_file_path,
    )


class LoggingContext:
    """Scoped per-thread logging context.

    Example:
        with log_context(user_id="clerk-1", operation="find_patients"):
            logger.info("Searching")
    """

    def __init__(self, **context: Any):
        self.context = context
        self.previous_context: dict[str, Any] = {}

    def __enter__(self) -> "LoggingContext":
        self.previous_context = _context_filter.get_context()
        _context_filter.set_context(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _context_filter.clear_context()
        _context_filter.set_context(**self.previous_context)


def log_context(**kwargs: Any) -> LoggingContext:
    return LoggingContext(**kwargs)
