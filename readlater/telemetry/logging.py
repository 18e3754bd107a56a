"""Logging setup shared by the web app and the CLI."""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_LEVEL_ENV = "READLATER_LOG_LEVEL"
LOG_FORMAT_ENV = "READLATER_LOG_FORMAT"

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime", "taskName"}

# Third-party loggers that drown the pipeline's own events at DEBUG.
_NOISY_LOGGERS = ("urllib3", "readability.readability")


class StructuredFormatter(logging.Formatter):
    """Render log records as one JSON object per line.

    Anything passed through ``extra=`` (``event``, ``url``, ``reason`` ...)
    is copied into the payload next to the standard fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(name: Optional[str]) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """Install a single stderr handler on the root logger.

    ``READLATER_LOG_LEVEL`` picks the level and ``READLATER_LOG_FORMAT=json``
    switches to :class:`StructuredFormatter`.
    """

    level = _resolve_level(os.getenv(LOG_LEVEL_ENV))
    structured = os.getenv(LOG_FORMAT_ENV, "plain").lower() in {"json", "structured"}

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


__all__ = ["configure_logging", "StructuredFormatter", "LOG_LEVEL_ENV", "LOG_FORMAT_ENV"]
