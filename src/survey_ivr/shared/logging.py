"""
JSON logging for the IVR service.

Module loggers carry no handlers of their own; records propagate to the
root logger, which `setup_logging` points at a single JSON stream handler
at the configured level.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from survey_ivr.config import Settings, get_settings

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else came in through `extra=`.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "context"}

_SQL_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")
_HTTP_LOGGERS = ("httpx", "httpcore")


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        fields = dict(getattr(record, "context", None) or {})
        fields.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        )
        for key, value in fields.items():
            payload[f"extra_{key}" if key in payload else key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Module logger; level and output come from the root configuration."""
    return logging.getLogger(name)


def setup_logging(settings: Settings | None = None) -> None:
    """Install the JSON handler on the root logger at `settings.log_level`."""
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())

    # SQLALCHEMY_LOG_LEVEL=INFO shows emitted SQL
    sql_level = os.getenv("SQLALCHEMY_LOG_LEVEL", "").strip().upper() or "WARNING"
    for name in _SQL_LOGGERS:
        logging.getLogger(name).setLevel(sql_level)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context: Any,
) -> None:
    """Log with arbitrary keyword context, including keys `extra=` would reject."""
    logger.log(level, message, extra={"context": context})
