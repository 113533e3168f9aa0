"""Structured key=value logging for the card generation service."""

import logging
import sys
from typing import Any

# LogRecord attributes that are not caller-supplied context
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime", "taskName"}
)


class StructuredFormatter(logging.Formatter):
    """Render a record as ``key=value`` pairs, including any ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key != "extra_data":
                log_data[key] = value

        if isinstance(getattr(record, "extra_data", None), dict):
            log_data.update(record.extra_data)

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout; DEBUG when CARDGEN_ENV=dev
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from cardgen.core.config import get_settings

            level = logging.DEBUG if get_settings().CARDGEN_ENV == "dev" else logging.INFO
        except Exception:
            # Settings unavailable (e.g. missing env) - default to INFO
            level = logging.INFO
        logger.setLevel(level)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with request context (card_id, user_id, blueprint_type, ...).

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **context: Fields rendered after the message
    """
    logger.log(level, msg, extra={"extra_data": context})
