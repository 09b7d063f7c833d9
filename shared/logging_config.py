"""Structured JSON logging configuration."""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from shared.config import get_settings

# Record attributes copied into the payload when passed through ``extra``
CONTEXT_FIELDS = (
    "trace_id",
    "request_id",
    "request_path",
    "slot_id",
    "booking_id",
    "payment_id",
    "candidate_user_id",
    "approval_request_id",
)

# Third-party loggers that drown out ours at DEBUG/INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "stripe", "aiosmtplib")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line: timestamp, level, logger, message, plus any
    CONTEXT_FIELDS present on the record and the formatted exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(
            {name: str(getattr(record, name)) for name in CONTEXT_FIELDS if hasattr(record, name)}
        )

        if record.levelno >= logging.ERROR:
            log_data["location"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(level: str | None = None) -> None:
    """
    Send JSON logs to stderr at ``level`` (LOG_LEVEL when omitted).

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.
    """
    level_name = (level or get_settings().LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # SQL echo goes through DATABASE_ECHO instead
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    root_logger.info(f"Logging configured: level={logging.getLevelName(log_level)}, format=JSON")
