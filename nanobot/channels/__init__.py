"""
Channels
========

Adapters between chat surfaces and the message bus.

- Channel: base class handling bus wiring
- CLIChannel: interactive terminal
- SlackChannel: Slack via Socket Mode (import from nanobot.channels.slack)
"""

from nanobot.channels.base import Channel
from nanobot.channels.cli import CLIChannel

__all__ = ["Channel", "CLIChannel"]
