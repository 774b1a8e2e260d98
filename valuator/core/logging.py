"""Logging setup: JSON or text output, request id stamping, ``valuator.*`` loggers.

Services log through ``get_logger("services.<module>")`` and attach structured
context with ``extra={...}``; the JSON formatter lifts those fields to the top
level of each record so insight ids, symbols and method keys are searchable.
"""

from __future__ import annotations

import json
import logging
import math
import sys
from contextvars import ContextVar
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import settings


ROOT_LOGGER_NAME = "valuator"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "asyncio")


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (set, frozenset, tuple)):
        return [_json_value(v) for v in value]
    return value


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with ``extra`` fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": settings.environment,
        }

        request_id = request_id_var.get()
        if request_id:
            payload["request_id"] = request_id

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in payload:
                continue
            payload[key] = _json_value(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            payload["location"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Single-line console output for local development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        prefix = f"[{request_id[:8]}] " if request_id else ""
        stamp = _record_time(record).strftime("%H:%M:%S.%f")[:-3]
        line = f"{stamp} {record.levelname:<7} {prefix}{record.name}: {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging() -> None:
    """Install one stdout handler on the root logger (replacing existing ones)."""
    level = getattr(logging, settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if settings.log_format == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.log_sql else logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger namespaced under ``valuator.``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
