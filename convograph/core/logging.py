"""Structured key=value logging for Convograph.

Derivation logs carry the session, stream and epoch they belong to so the
publish/discard history of one stream can be followed with a single grep.
"""

import logging
import sys
from typing import Any

# Context fields rendered right after the message, in this order
CONTEXT_FIELDS = ("session_id", "stream", "epoch", "provider")


def _level_for_env() -> int:
    try:
        from convograph.core.config import get_settings

        return logging.DEBUG if get_settings().CONVOGRAPH_ENV == "dev" else logging.INFO
    except Exception:
        # Settings unavailable (e.g. invalid env); stay at INFO
        return logging.INFO


class StructuredFormatter(logging.Formatter):
    """key=value log formatter with stable context field ordering."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = getattr(record, "context", {}) or {}
        for key in CONTEXT_FIELDS:
            if context.get(key) is not None:
                log_data[key] = context[key]
        for key, value in context.items():
            if key not in CONTEXT_FIELDS and value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{k}={v}" for k, v in log_data.items())


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout, DEBUG in dev and INFO otherwise
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields such as session_id, stream, epoch, provider
    """
    logger.log(level, msg, extra={"context": kwargs})
