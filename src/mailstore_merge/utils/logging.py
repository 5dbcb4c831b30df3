"""Logging helpers for console and log file output."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from mailstore_merge.config.settings import LoggingSettings

PERF = 15

_HUMAN_FORMAT = "%(asctime)s %(levelname)s %(message)s"
_HUMAN_DATEFMT = "%Y-%m-%d %H:%M:%S"

_RESERVED_LOG_RECORD_KEYS: set[str] = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "message",
    "module",
    "msecs",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


def _safe_json_value(value: object) -> Any:
    """Coerce a value to something JSON-serializable.

    Args:
        value: Value to serialize.

    Returns:
        The original value if JSON-serializable; otherwise, its string representation.
    """
    try:
        json.dumps(value)
        return value
    except TypeError:
        return str(value)


class JsonLogFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON string representation.
        """
        payload: dict[str, Any] = {
            "ts": datetime.now(tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_KEYS:
                continue
            if key.startswith("_"):
                continue
            payload[key] = _safe_json_value(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def register_levels() -> None:
    """Register the PERF level and the short WARN level name."""
    logging.addLevelName(PERF, "PERF")
    logging.addLevelName(logging.WARNING, "WARN")


def resolve_level(settings: LoggingSettings) -> int:
    """Return the numeric threshold for the configured settings."""
    if settings.verbose:
        return logging.DEBUG
    level_name = settings.level.strip().upper() if settings.level else "INFO"
    if level_name == "PERF":
        return PERF
    if level_name == "WARN":
        return logging.WARNING
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(*, settings: LoggingSettings) -> None:
    """Configure stdout logging and the optional log file mirror.

    Args:
        settings: Logging settings (level, format, file sink).
    """
    register_levels()
    level = resolve_level(settings)

    formatter: logging.Formatter
    if settings.json_logs:
        formatter = JsonLogFormatter()
    else:
        formatter = logging.Formatter(fmt=_HUMAN_FORMAT, datefmt=_HUMAN_DATEFMT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if settings.file is not None:
        settings.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            settings.file,
            mode="a" if settings.append else "w",
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
