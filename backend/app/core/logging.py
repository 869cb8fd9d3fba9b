"""Logging configuration and logger factory for the backend."""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from app.core.config import settings

_ROOT_LOGGER_NAME = "app"
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}
_configured = False


def _json_default(value: object) -> object:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {key: val for key, val in vars(record).items() if key not in _STDLIB_KEYS}


class JsonFormatter(logging.Formatter):
    """Format each record as one JSON line including `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, val in _record_extras(record).items():
            payload.setdefault(key, val)
        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends `extra` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _record_extras(record)
        if not extras:
            return base
        rendered = " ".join(f"{key}={val}" for key, val in sorted(extras.items()))
        return f"{base} {rendered}"


def configure_logging() -> None:
    """Install the configured handler on the application logger tree once."""
    global _configured
    if _configured:
        return

    formatter: logging.Formatter
    if settings.log_format.strip().lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = TextFormatter(_TEXT_FORMAT)
    if settings.log_use_utc:
        formatter.converter = time.gmtime

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the application namespace."""
    if name == _ROOT_LOGGER_NAME or name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
