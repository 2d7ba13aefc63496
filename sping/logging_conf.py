"""Logging configuration for the service.

JSON-line records on stdout, one object per line. Safe to call
setup_logging() more than once: handlers are only attached the first time.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from logging import Handler, LogRecord
from typing import Any

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON object.

    Core keys are `ts`, `level`, `logger` and `message`. Structured fields
    passed through `extra={...}` are merged in without overwriting core keys.
    """

    def format(self, record: LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
        }

        msg = record.msg
        if isinstance(msg, dict):
            payload.update(msg)
        else:
            payload["message"] = record.getMessage()

        for key, value in record.__dict__.items():
            if key in _RESERVED or key in payload:
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _make_stream_handler(level: int) -> Handler:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def _normalize_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(level: str | int = _DEFAULT_LEVEL) -> None:
    """Configure the root logger and the uvicorn loggers for JSON output.

    Idempotent: only attaches a handler if the root logger has none. The
    level is always applied, so the CLI can raise or lower it after import.
    """
    root = logging.getLogger()
    level = _normalize_level(level)
    root.setLevel(level)

    if not root.handlers:
        root.addHandler(_make_stream_handler(level))
    else:
        for h in root.handlers:
            if isinstance(h.formatter, JsonFormatter):
                h.setLevel(level)

    # uvicorn ships its own handlers; route everything through root instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.setLevel(level)
        lg.propagate = True
        for h in list(lg.handlers):
            lg.removeHandler(h)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger.

    Usage: logger = get_logger(__name__)
    """
    return logging.getLogger(name if name else __name__)
