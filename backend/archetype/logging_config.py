"""
Structured JSON logging.

Every log line is one JSON object written to stdout, tagged with the
channel it came from (http, db, tests, admission, grading, skills, notify)
and the id of the HTTP request being served, if any.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from archetype import config

# Request id of the request currently being handled; set by the HTTP middleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGER_NAMESPACE = "archetype"
CHANNELS = ("http", "db", "tests", "admission", "grading", "skills", "notify")


def _channel_name(logger_name: str) -> str:
    prefix = LOGGER_NAMESPACE + "."
    return logger_name[len(prefix):] if logger_name.startswith(prefix) else logger_name


def _timestamp(record: logging.LogRecord) -> str:
    created = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return created.strftime("%Y-%m-%dT%H:%M:%S.") + "{:03d}Z".format(int(record.msecs))


class StructuredJsonFormatter(logging.Formatter):
    """
    Renders a record as a single JSON line.

    Keys: timestamp (UTC, ms precision), level, service, channel, message,
    context (request_id plus the business ids passed by the caller), extra
    (measurements such as duration_ms) and, when an exception is attached,
    exception with the formatted traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = {"request_id": request_id_var.get()}
        context.update(getattr(record, "context", None) or {})

        entry = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "service": config.APP_NAME,
            "channel": getattr(record, "channel", None) or _channel_name(record.name),
            "message": record.getMessage(),
            "context": context,
            "extra": getattr(record, "extra_data", None) or {},
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = None) -> logging.Logger:
    """Install the JSON handler on the root logger and set channel levels."""
    resolved = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(resolved)
    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger("{}.{}".format(LOGGER_NAMESPACE, channel))


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Log ``message`` on a channel logger with structured fields.

    Args:
        logger: channel logger from ``get_logger``
        level: level name (DEBUG, INFO, WARNING, ERROR)
        message: human-readable message
        context: business ids (attempt_id, user_id, test_id, ...)
        extra_data: measurements and other metadata (duration_ms, score, ...)
        exc_info: attach the exception currently being handled
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        exc_info=exc_info,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": _channel_name(logger.name),
        },
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
