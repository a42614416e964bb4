"""Core logging configuration with structured JSON support."""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from .config import settings

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for shipping build/reproducer logs to an aggregator."""

    def __init__(self, include_extra: bool = True) -> None:
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "task": getattr(record, "taskName", None),
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if key in _RECORD_ATTRS or key.startswith("_"):
                    continue
                try:
                    json.dumps(value)
                except (TypeError, ValueError):
                    value = str(value)
                extra[key] = value
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter with colors for interactive runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        host = getattr(record, "ssh_host", None)
        origin = f"{record.name} [{host}]" if host else record.name

        formatted = (
            f"{timestamp} - {color}{record.levelname:8}{self.RESET} - "
            f"{origin} - {record.getMessage()}"
        )
        if record.exc_info:
            formatted += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return formatted


def setup_logging() -> None:
    """Install a single stdout handler on the root logger.

    JSON output is used when ``LOG_FORMAT=json`` or in production, console
    output otherwise (or when ``LOG_FORMAT=console``).
    """
    log_level = getattr(logging, settings.log_level.upper())

    if settings.log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif settings.log_format == "console":
        formatter = ConsoleFormatter()
    elif settings.environment.lower() == "production":
        formatter = JSONFormatter()
    else:
        formatter = ConsoleFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    # asyncssh logs every channel open/close at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance with the given name."""
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches fixed context to every record.

    Example:
        >>> log = LoggerAdapter(get_logger(__name__), {"ssh_host": "10.0.2.15"})
        >>> log.info("Connected")  # record carries ssh_host
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs
