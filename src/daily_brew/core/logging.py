"""
Logging for the Daily Brew engine.

Every engine module logs through ``get_logger(__name__)``. The engine's
recoverable failures (unreadable taste or focus-mode state, malformed
producer events, events dropped by a full channel, a decay pass that
skipped an item) are reported at WARNING, which is the default level, so
they reach stderr without configuration. Routine session activity such as
ingest decisions and learned interactions is logged at DEBUG.

Level and format come from ``BrewSettings``: ``BREW_LOG_LEVEL`` (or the
legacy ``BREW_DEBUG``) and ``BREW_LOG_JSON`` for one JSON object per line,
with ``extra`` fields such as the dropped event id carried as keys.

Usage:
    from daily_brew.core.logging import get_logger

    logger = get_logger(__name__)
    logger.warning("Backpressure: dropped event %s - channel full", event.id, extra={"event_id": event.id})
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "taskName",
    }
)


def _get_log_level() -> int:
    """Determine log level from centralized config."""
    return get_settings().log_level_int


def _is_json_output() -> bool:
    """Check if JSON output is requested."""
    return get_settings().log_json


class BrewFormatter(logging.Formatter):
    """
    Renders ``[BREW LEVEL] [module] message`` lines, or JSON objects when
    ``json_output`` is set.
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        if self.json_output:
            timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
            return self._format_json(record, timestamp)
        return self._format_text(record)

    def _format_text(self, record: logging.LogRecord) -> str:
        """Format as human-readable text."""
        module = record.name.split(".")[-1] if "." in record.name else record.name

        msg = f"[BREW {record.levelname}] [{module}] {record.getMessage()}"

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            msg += f"\n{exc_text}"

        return msg

    def _format_json(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as JSON for machine parsing."""
        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_handler: Optional[logging.Handler] = None


def _get_handler() -> logging.Handler:
    """Shared stderr handler, formatted per the current settings."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(BrewFormatter(json_output=_is_json_output()))
    return _handler


def get_logger(name: str) -> logging.Logger:
    """
    Logger for an engine module, attached to the shared stderr handler.

    Records do not propagate to the root logger.
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_get_log_level())
    logger.addHandler(_get_handler())
    logger.propagate = False

    _loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """Change the level of every engine logger created so far."""
    for logger in _loggers.values():
        logger.setLevel(level)


def reset_logging() -> None:
    """
    Return every daily_brew.* logger to a propagating, NOTSET state.

    The shared stderr handler is detached and rebuilt on the next
    ``get_logger`` call, so settings changed between tests (level, JSON
    output) take effect and caplog sees the records.
    """
    global _handler

    manager = logging.Logger.manager
    for name in list(manager.loggerDict.keys()):
        if name == "daily_brew" or name.startswith("daily_brew."):
            logger_or_placeholder = manager.loggerDict[name]
            if isinstance(logger_or_placeholder, logging.Logger):
                logger_or_placeholder.propagate = True
                logger_or_placeholder.setLevel(logging.NOTSET)

    for logger in _loggers.values():
        if _handler is not None:
            logger.removeHandler(_handler)

    _handler = None
