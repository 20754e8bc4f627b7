"""Structured logging for Vaani.

Outputs JSON-lines format for easy parsing and debugging.
Set VAANI_LOG_LEVEL env var to control verbosity (DEBUG/INFO/WARNING/ERROR).
Set VAANI_LOG_FORMAT=text for human-readable output instead of JSON.
"""
import logging
import json
import os
import sys
from typing import Any

# Extra fields copied from `extra=` into the JSON entry
EXTRA_FIELDS = (
    "component", "flow", "action", "detail", "duration_ms", "count",
    "endpoint", "status_code", "ip", "session", "collection", "field",
)


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
            entry["error_type"] = type(record.exc_info[1]).__name__
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_logger(name: str = "vaani") -> logging.Logger:
    """Get or create a structured logger.

    Usage:
        from log import get_logger
        logger = get_logger("vaani.flows")
        logger.info("Flow finished", extra={"flow": "chatBotFlow", "duration_ms": 812})
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = os.environ.get("VAANI_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))

        handler = logging.StreamHandler(sys.stderr)
        fmt = os.environ.get("VAANI_LOG_FORMAT", "json")
        if fmt == "text":
            handler.setFormatter(logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            ))
        else:
            handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger
