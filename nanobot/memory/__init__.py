"""
Memory System
=============

Process-lifetime conversation memory. Sessions are bounded by message count
and estimated tokens; nothing is persisted across restarts.
"""

from nanobot.memory.context_manager import (
    ContextManager,
    ContextMessage,
    MessageRole,
    estimate_tokens,
)

__all__ = ["ContextManager", "ContextMessage", "MessageRole", "estimate_tokens"]
