"""Structured logging configuration for the adaptive bitrate service.

Provides key=value formatted logs carrying bitrate, RTT and decision
reason context.
"""

import logging
import sys
from typing import Any

from adaptive_bitrate.config import get_settings

# Extra fields copied from `logger.x(..., extra={...})` into the output
_CONTEXT_FIELDS = ("client_id", "bitrate_bps", "rtt_ms", "reason", "tick")


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter with controller context."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as key=value pairs.

        Args:
            record: Log record to format

        Returns:
            Structured log string
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        pairs = [f"{k}={v}" for k, v in log_data.items()]
        return " ".join(pairs)


def setup_logging() -> None:
    """Configure structured logging for the application.

    Sets up handlers, formatters, and log levels based on settings.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    root_logger.addHandler(console_handler)

    # Set library log levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.INFO)

    logging.getLogger("adaptive_bitrate").setLevel(level)
