"""Structured logging configuration for the Reflect chat study API."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes callers attach through ``extra=`` that belong in the JSON payload
EXTRA_FIELDS = ("session_id", "participant_id", "error_code", "error_details", "duration_ms")


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure the root logger.

    ``text`` keeps the plain format installed by config; ``json`` replaces the
    root handlers with a single structured JSON handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    if log_format != "json":
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
