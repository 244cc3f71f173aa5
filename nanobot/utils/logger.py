"""
Logger Utility
==============

Context-prefixed, color-coded logging used by every nanobot component.

Each module creates its own logger with a short context name:

    from nanobot.utils.logger import Logger

    logger = Logger("MessageBus")
    logger.info("Bus started")
    logger.debug("Dispatching message", {"channel": "agent", "handlers": 2})

Output format:
    [2024-01-31T10:30:00] [INFO] [MessageBus] Bus started

The minimum level comes from the LOG_LEVEL environment variable unless a
level is passed explicitly; child loggers inherit an explicit level.
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Numeric log levels; a message is shown when its level >= the minimum."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def parse_level(value: str | None, default: LogLevel = LogLevel.INFO) -> LogLevel:
    """Map a level name such as "debug" or "WARN" to a LogLevel."""
    if not value:
        return default
    return _LEVEL_NAMES.get(value.upper(), default)


class Logger:
    """
    A logger bound to a context string.

    Child loggers extend the context, so a tool running inside the agent
    loop logs as [Agent:Tools]:

        agent_logger = Logger("Agent")
        tool_logger = agent_logger.child("Tools")
    """

    def __init__(self, context: str = "", level: LogLevel | None = None):
        self.context = context
        self._level = level

    @property
    def min_level(self) -> LogLevel:
        # LOG_LEVEL may come from .env, which is loaded after module loggers exist
        return self._level if self._level is not None else parse_level(os.getenv("LOG_LEVEL"))

    def child(self, child_context: str) -> "Logger":
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context, self._level)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self.min_level

    def _format(self, level_name: str, color: str, message: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""
        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level_name}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _emit(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        # Warnings and errors go to stderr so stdout stays usable for CLI replies
        stream = sys.stderr if level >= LogLevel.WARNING else sys.stdout
        print(self._format(level_name, color, message), file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Detailed information, shown only with LOG_LEVEL=DEBUG."""
        self._emit(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """General operational information."""
        self._emit(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Something unexpected that does not stop the current operation."""
        self._emit(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error, optionally with the exception that caused it.

        Args:
            message: What failed
            error: The exception; its type and message are printed as data
        """
        data = None
        if error is not None:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._emit(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


logger = Logger("Nanobot")
