"""Structured key=value logging for the tutor engine.

Every module takes its logger from ``get_logger(__name__)``. Request-scoped
identifiers (chat, thread, provider) are attached with ``log_with_context`` so
a single conversation can be followed through context assembly,
summarization and the main completion.
"""

import logging
import sys
from typing import Any

# Fields promoted to the front of a log line when present on the record
CONTEXT_FIELDS = ("chat_id", "thread_id", "provider_id")


def _render_value(value: Any) -> str:
    text = str(value)
    if " " in text or "=" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Formats records as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        log_data["message"] = record.getMessage()

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        line = " ".join(f"{k}={_render_value(v)}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout; DEBUG in the dev
        environment, INFO elsewhere
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            level = logging.DEBUG if get_settings().TUTOR_ENV == "dev" else logging.INFO
        except Exception:
            # Settings unavailable (missing env); stay at INFO
            level = logging.INFO
        logger.setLevel(level)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields; chat_id, thread_id and provider_id are
            promoted, everything else is appended as extra data
    """
    extra: dict[str, Any] = {}
    for field in CONTEXT_FIELDS:
        if field in kwargs:
            extra[field] = kwargs.pop(field)
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
