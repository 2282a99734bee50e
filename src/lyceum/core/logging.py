"""
Lyceum Logging — one stdout handler, readable in a terminal, parseable in prod.

Text mode prints the message and then any tutorial context passed through
``extra`` as trailing ``key=value`` pairs:

    14:02:11 INFO  lyceum.session.bridge: Tool call acked  tool=select_topic phase=diagnostic

JSON mode (LYCEUM_LOG_FORMAT=json) emits one object per line with the same
context keys at the top level.

Env vars:
    LYCEUM_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default: INFO)
    LYCEUM_LOG_COLOR   true / false / auto (default: auto, TTY detection)
    LYCEUM_LOG_FORMAT  text / json (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Tutorial context forwarded from logger.info(..., extra={...})
SESSION_FIELDS = ("session_id", "call_id", "tool", "status", "phase", "duration_ms")

# WebRTC negotiation and HTTP clients are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "aiortc", "aioice", "uvicorn.access")

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
_DIM = "\033[2m"
_RESET = "\033[0m"


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in SESSION_FIELDS
        if getattr(record, key, None) is not None
    }


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines with the session context appended."""

    def __init__(self, use_color: bool = False) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = self.formatTime(record, self.datefmt)
        level = f"{record.levelname:<5}"
        name = record.name
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelno, '')}{level}{_RESET}"
            name = f"{_DIM}{name}{_RESET}"

        line = f"{stamp} {level} {name}: {record.getMessage()}"
        context = _context(record)
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            line = f"{line}  {_DIM}{pairs}{_RESET}" if self.use_color else f"{line}  {pairs}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _use_color() -> bool:
    setting = os.getenv("LYCEUM_LOG_COLOR", "auto").lower()
    if setting in ("true", "false"):
        return setting == "true"
    return sys.stdout.isatty()


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install the Lyceum handler on the root logger. Call once at startup."""
    level_name = (level or os.getenv("LYCEUM_LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    log_format = (fmt or os.getenv("LYCEUM_LOG_FORMAT", "text")).lower()

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = ConsoleFormatter(use_color=_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(numeric_level)

    logging.getLogger("lyceum").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )
