"""
JSON log output for the assistant.

Routing, breaker and confirmation events pass identifiers through
`extra=...`; the formatter lifts the known ones to top-level keys so logs can
be filtered per tenant, session or provider.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from shared.config import get_settings

# LogRecord attributes promoted into the JSON payload when present
EXTRA_FIELDS = ("session_id", "tenant_id", "provider", "context", "event")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "openai", "anthropic")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Guest messages are often Cyrillic or accented
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    """
    Route all logging to stderr as JSON.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL
    """
    level_name = (level or get_settings().LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging configured | level={level_name} | format=json")
