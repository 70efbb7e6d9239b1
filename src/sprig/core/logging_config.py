"""Logging setup and lifecycle log helpers for sprig.

Usage:
    from sprig.core.logging_config import configure_logging, get_logger

    # Once, at command startup
    configure_logging(level="DEBUG")

    # In modules
    logger = get_logger(__name__)

Lifecycle lines written by the task graph and providers share one shape:

    [build.api.v-1a2b3c4d5e] task_start: type=build, deps=2
    [build.api.v-1a2b3c4d5e] task_complete: type=build (1.2s)
    [deploy.web.v-0f9e8d7c6b] task_failed: error=... (0.3s)

Environment Variables:
    SPRIG_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    SPRIG_LOG_FORMAT: Output format ("text" or "json")
    SPRIG_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    {"timestamp": "...", "level": "DEBUG", "logger": "sprig.core.dag.graph",
     "message": "[build.api] task_start: ...", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            data["extra"] = extra

        return json.dumps(data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    force: bool = False,
) -> None:
    """Configure the ``sprig`` logger hierarchy.

    Subsequent calls are ignored unless ``force`` is set. Arguments win over
    the SPRIG_LOG_* environment variables.

    Args:
        level: Log level name. Defaults to SPRIG_LOG_LEVEL or "WARNING".
        format: "text" or "json". Defaults to SPRIG_LOG_FORMAT or "text".
        file_path: Also log to this file. Defaults to SPRIG_LOG_FILE.
        force: Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    level = level or os.environ.get("SPRIG_LOG_LEVEL", "WARNING")
    format = format or os.environ.get("SPRIG_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("SPRIG_LOG_FILE")

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    formatter: logging.Formatter
    if format == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger("sprig")
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger, namespaced under ``sprig`` (typically ``__name__``)."""
    return logging.getLogger(name)


def truncate(value: Any, max_length: int = 100) -> str:
    """Shorten a value for a log line."""
    s = str(value)
    if len(s) <= max_length:
        return s
    return f"{s[:max_length]}... ({len(s)} chars)"


def _event(identifier: str, action: str, fields: dict[str, Any], duration_s: float | None) -> str:
    kv_pairs = ", ".join(f"{k}={truncate(v)}" for k, v in fields.items())
    msg = f"[{identifier}] {action}"
    if kv_pairs:
        msg += f": {kv_pairs}"
    if duration_s is not None:
        msg += f" ({duration_s:.1f}s)" if kv_pairs else f": ({duration_s:.1f}s)"
    return msg


def log_start(logger: logging.Logger | None, identifier: str, action: str, **kwargs: Any) -> None:
    """Log a start event at DEBUG. No-op without a logger."""
    if logger is None:
        return
    logger.debug(_event(identifier, action, kwargs, None))


def log_complete(
    logger: logging.Logger | None,
    identifier: str,
    action: str,
    duration_s: float,
    **kwargs: Any,
) -> None:
    """Log a completion event with its duration at DEBUG."""
    if logger is None:
        return
    logger.debug(_event(identifier, action, kwargs, duration_s))


def log_error(
    logger: logging.Logger | None,
    identifier: str,
    action: str,
    error: str | BaseException,
    duration_s: float | None = None,
    **kwargs: Any,
) -> None:
    """Log an error event at ERROR, with the exception type when given one."""
    if logger is None:
        return
    if isinstance(error, BaseException):
        kwargs = {"error": f"{type(error).__name__}: {error}", **kwargs}
    else:
        kwargs = {"error": error, **kwargs}
    logger.error(_event(identifier, action, kwargs, duration_s))


def log_warning(logger: logging.Logger | None, identifier: str, action: str, **kwargs: Any) -> None:
    """Log a warning event."""
    if logger is None:
        return
    logger.warning(_event(identifier, action, kwargs, None))
