"""Structured logging for Genius Writer.

Lines are rendered as key=value pairs. Request context (tool, request id,
error kind) is attached through `extra` and always printed in the same order
so log lines for one tool can be grepped together.
"""

import logging
import sys
from typing import Any

from genius_writer.core.config import get_settings

# Context fields rendered right after the message, in this order
CONTEXT_FIELDS = ("tool_id", "request_id", "kind")

_LEVELS_BY_ENV = {"dev": logging.DEBUG, "test": logging.WARNING}


class StructuredFormatter(logging.Formatter):
    """key=value formatter with request context."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                fields[name] = value
        fields.update(getattr(record, "extra_data", {}))

        line = " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def level_for_env(env: str) -> int:
    """DEBUG in dev, WARNING under test, INFO everywhere else."""
    return _LEVELS_BY_ENV.get(env, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger that writes structured lines to stdout.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger with the structured handler attached once
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(level_for_env(get_settings().WRITER_ENV))
    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with request context.

    Keys listed in CONTEXT_FIELDS become record attributes; anything else is
    appended as extra key=value pairs.
    """
    extra: dict[str, Any] = {name: context.pop(name) for name in CONTEXT_FIELDS if name in context}
    extra["extra_data"] = context
    logger.log(level, msg, extra=extra)
