"""
Logging configuration with a colored, tag-based console handler.

Usage:
    from chatrelay.config.logging import get_logger
    logger = get_logger("listener")
    logger.info("Listener started", extra={"listener_id": "discord-gateway-..."})
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",
}

# Tag colors, matched on the first segment of the logger name
TAG_COLORS = {
    "listener": "\033[95m",  # Magenta
    "gateway": "\033[93m",  # Yellow
    "web": "\033[94m",  # Blue
    "events": "\033[96m",  # Cyan
    "adapters": "\033[92m",  # Green
}

# Loggers from libraries that are too chatty at INFO
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "discord",
    "discord.gateway",
    "discord.client",
    "discord.http",
    "uvicorn",
    "uvicorn.access",
    "redis",
)


class ColoredConsoleFormatter(logging.Formatter):
    """Formatter that adds colors and a [tag] prefix per logger."""

    def format(self, record: logging.LogRecord) -> str:
        level_color = COLORS.get(record.levelname, "")
        reset = COLORS["RESET"]

        tag = record.name
        tag_color = TAG_COLORS.get(tag.split(".")[0], "\033[37m")

        timestamp = datetime.now().strftime("%H:%M:%S")
        level_str = f"{level_color}{record.levelname:8}{reset}"
        tag_str = f"{tag_color}[{tag}]{reset}"

        extra_parts = []
        if getattr(record, "listener_id", None):
            extra_parts.append(f"listener={record.listener_id}")
        if getattr(record, "duration_ms", None) is not None:
            extra_parts.append(f"duration={record.duration_ms}ms")
        if getattr(record, "platform", None):
            extra_parts.append(f"platform={record.platform}")

        extra_str = f" ({', '.join(extra_parts)})" if extra_parts else ""
        msg = f"{timestamp} {level_str} {tag_str} {record.getMessage()}{extra_str}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


_initialized = False


def _get_console_level() -> int:
    """Get console log level from environment variable."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def init_logging(console_level: int | None = None) -> None:
    """Initialize the logging system with the colored console handler."""
    global _initialized

    if _initialized:
        return

    if console_level is None:
        console_level = _get_console_level()

    # Clear any existing handlers on root logger (from basicConfig or other sources)
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredConsoleFormatter())

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    if not _initialized:
        init_logging()
    return logging.getLogger(name)


def reset_logging() -> None:
    """Forget initialization so the next get_logger() reconfigures (for testing)."""
    global _initialized
    _initialized = False
