"""Structured key=value logging for the connection service.

Every logger returned by get_logger() hangs off the "serendipity" parent, which
owns the single stdout handler. Pipeline context (run_id, entry_id, project_id,
cluster_index) is printed right after the message so one run can be grepped
end to end.
"""

import logging
import sys
from typing import Any

ROOT_LOGGER_NAME = "serendipity"

# Printed in this order ahead of any other context field
CONTEXT_KEYS = ("run_id", "entry_id", "project_id", "cluster_index")


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """key=value formatter; values containing spaces are quoted."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = dict(getattr(record, "context", {}))
        for key in CONTEXT_KEYS:
            if key in context:
                fields[key] = context.pop(key)
        fields.update(context)

        line = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items() if v is not None)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.propagate = False

    try:
        from serendipity.core.config import get_settings

        env = get_settings().SERENDIPITY_ENV
    except Exception:
        # Settings unavailable (missing env); fall back to INFO
        env = None
    root.setLevel(logging.DEBUG if env == "dev" else logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the service's root logger.

    Args:
        name: Logger name (typically __name__)
    """
    _configure_root()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log a message with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **context: Fields such as run_id, cluster_index, counts
    """
    logger.log(level, msg, extra={"context": context})
