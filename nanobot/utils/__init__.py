"""
Utilities Module
================

Shared helpers:
- logger: context-prefixed colored logging
- config: environment-driven configuration
"""

from nanobot.utils.logger import Logger, LogLevel, logger
from nanobot.utils.config import Config, get_config, load_config

__all__ = ["Logger", "LogLevel", "logger", "Config", "get_config", "load_config"]
