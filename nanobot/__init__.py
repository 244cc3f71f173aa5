"""
nanobot
=======

A small agent orchestration runtime: a message bus, bounded per-session
context, a tool registry, a tool-calling agent loop, background subagents and
a cron service, wired together by nanobot.runtime.
"""

__version__ = "0.1.0"
