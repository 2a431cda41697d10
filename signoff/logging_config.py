"""
Logging setup for signoff.

Every module logs through a named logger under ``signoff``. This module
attaches one handler to that root logger according to LoggingConfig,
writing either plain text or one JSON object per line.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from signoff.config.schema import LoggingConfig

ROOT_LOGGER = "signoff"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class JsonFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # extra={...} fields
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(
    config: LoggingConfig,
    stream: Any = None,
) -> logging.Logger:
    """
    Configure the ``signoff`` logger hierarchy.

    Handlers installed by an earlier call are replaced, so calling this
    again with a new configuration does not duplicate output.

    Args:
        config: Logging section of the configuration.
        stream: Stream for the console handler; defaults to stderr.

    Returns:
        The configured root ``signoff`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        if getattr(handler, "_signoff_handler", False):
            logger.removeHandler(handler)
            handler.close()

    if config.file:
        handler: logging.Handler = logging.FileHandler(config.file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream or sys.stderr)

    if config.format.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler._signoff_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
