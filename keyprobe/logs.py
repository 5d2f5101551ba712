"""
Structured logging for keyprobe.

Log calls pass their fields through ``extra=`` and the formatters render
them either as ``key=value`` pairs or as one JSON object per line:

    logger.info("upstream response", extra={"operation": "chat", "status": 429})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any

LOGGER_NAME = "keyprobe"

# Attributes every LogRecord has; anything else came from ``extra``
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured fields attached to a record."""
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()


class KeyValueFormatter(logging.Formatter):
    """Render ``ts LEVEL logger message k=v ...`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            _timestamp(record),
            record.levelname,
            record.name,
            record.getMessage(),
        ]
        for key, value in record_fields(record).items():
            if isinstance(value, str) and (" " in value or not value):
                value = json.dumps(value)
            parts.append(f"{key}={value}")
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """Render one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(record_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """
    Install a single stream handler on the keyprobe logger.

    Calling this again replaces the previous handler, so the server and the
    CLI can both call it safely.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else KeyValueFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a logger under the keyprobe namespace."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)
