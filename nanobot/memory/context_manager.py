"""
Context Manager
===============

Bounded, in-memory conversation transcript per session.

Each agent call rebuilds what the model has seen from this store. History
lives only in RAM and is pruned on every append:

1. Drop the oldest messages while the count exceeds max_messages_per_session
2. Then drop the oldest messages while the estimated token total exceeds
   max_tokens_per_session

Pruning always removes from the front, so recent context wins over old.

Design Notes:
- session_key -> list[ContextMessage], created on first append
- One lock per session serialises appends and pruning for that session
- A map lock guards session creation and removal
- Token counts are a fixed len(content) // 4 estimate, not a real tokenizer
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from nanobot.utils.logger import Logger

logger = Logger("Context")


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


def estimate_tokens(content: str) -> int:
    """Rough token estimate: four characters per token."""
    return len(content) // 4


@dataclass
class ContextMessage:
    """
    A single message in a session transcript.

    Attributes:
        role: Who produced the message
        content: The message text
        timestamp: When the message was appended
        metadata: Extra keys surfaced to the model adapter (tool name, success
            flag, tool call ids)
    """
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.content)

    def to_dict(self) -> dict[str, Any]:
        """Format for LLM adapters: role and content plus metadata keys."""
        result: dict[str, Any] = dict(self.metadata)
        result["role"] = self.role.value
        result["content"] = self.content
        return result


class _Session:
    __slots__ = ("messages", "lock")

    def __init__(self):
        self.messages: list[ContextMessage] = []
        self.lock = threading.Lock()


class ContextManager:
    """
    Per-session conversation memory with count and token caps.

    Example:
        context = ContextManager(max_messages_per_session=30)

        context.add_message("cli:1", "user", "Hello!")
        context.add_message("cli:1", "assistant", "Hi there!")

        history = context.get_messages("cli:1")
        context.clear_session("cli:1")
    """

    def __init__(
        self,
        max_messages_per_session: int = 50,
        max_tokens_per_session: int = 8000
    ):
        if max_messages_per_session < 1:
            raise ValueError("max_messages_per_session must be at least 1")
        if max_tokens_per_session < 0:
            raise ValueError("max_tokens_per_session must not be negative")

        self.max_messages_per_session = max_messages_per_session
        self.max_tokens_per_session = max_tokens_per_session
        self._sessions: dict[str, _Session] = {}
        self._map_lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None

    # ==========================================================================
    # Messages
    # ==========================================================================

    def add_message(
        self,
        session_key: str,
        role: str | MessageRole,
        content: str,
        metadata: dict[str, Any] | None = None
    ) -> ContextMessage:
        """
        Append a message to a session and prune it back within limits.

        Args:
            session_key: Opaque session identifier
            role: "user", "assistant", "tool" or "system"
            content: Message text
            metadata: Optional extra keys returned by get_messages()

        Raises:
            ValueError: If the role is not one of the known roles
        """
        message = ContextMessage(
            role=MessageRole(role),
            content=content or "",
            metadata=dict(metadata or {}),
        )

        session = self._get_or_create(session_key)
        with session.lock:
            session.messages.append(message)
            dropped = self._prune(session.messages)

        if dropped:
            logger.debug(f"Pruned {dropped} messages from {session_key}")
        return message

    def get_messages(self, session_key: str) -> list[dict[str, Any]]:
        """
        Snapshot of a session's messages in insertion order.

        Unknown sessions yield an empty list.
        """
        session = self._sessions.get(session_key)
        if session is None:
            return []
        with session.lock:
            return [m.to_dict() for m in session.messages]

    def get_context_messages(self, session_key: str) -> list[ContextMessage]:
        """Snapshot of the ContextMessage objects, with timestamps."""
        session = self._sessions.get(session_key)
        if session is None:
            return []
        with session.lock:
            return list(session.messages)

    def _prune(self, messages: list[ContextMessage]) -> int:
        """Trim from the front: count cap first, then token cap."""
        dropped = 0

        excess = len(messages) - self.max_messages_per_session
        if excess > 0:
            del messages[:excess]
            dropped += excess

        total = sum(m.tokens for m in messages)
        while total > self.max_tokens_per_session and messages:
            total -= messages.pop(0).tokens
            dropped += 1

        return dropped

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def _get_or_create(self, session_key: str) -> _Session:
        session = self._sessions.get(session_key)
        if session is not None:
            return session
        with self._map_lock:
            return self._sessions.setdefault(session_key, _Session())

    def ensure_session(self, session_key: str) -> None:
        self._get_or_create(session_key)

    def has_session(self, session_key: str) -> bool:
        return session_key in self._sessions

    def clear_session(self, session_key: str) -> bool:
        """Forget a session entirely. Returns True if it existed."""
        with self._map_lock:
            removed = self._sessions.pop(session_key, None) is not None
        if removed:
            logger.debug(f"Cleared session {session_key}")
        return removed

    def get_session_keys(self) -> list[str]:
        with self._map_lock:
            return list(self._sessions)

    def get_session_info(self, session_key: str) -> dict[str, Any]:
        messages = self.get_context_messages(session_key)
        return {
            "message_count": len(messages),
            "estimated_tokens": sum(m.tokens for m in messages),
            "oldest_message": messages[0].timestamp if messages else None,
            "latest_message": messages[-1].timestamp if messages else None,
        }

    def cleanup_old_sessions(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """
        Remove sessions that are empty or whose last message is older than
        max_age.

        Returns:
            Number of sessions removed
        """
        cutoff = datetime.now() - max_age
        removed = 0

        with self._map_lock:
            for key in list(self._sessions):
                session = self._sessions[key]
                with session.lock:
                    stale = not session.messages or session.messages[-1].timestamp < cutoff
                if stale:
                    del self._sessions[key]
                    removed += 1

        if removed:
            logger.info(f"Swept {removed} idle sessions")
        return removed

    # ==========================================================================
    # Background sweep
    # ==========================================================================

    def start_auto_cleanup(
        self,
        max_age: timedelta = timedelta(hours=1),
        interval: timedelta = timedelta(minutes=10)
    ) -> asyncio.Task:
        """
        Run cleanup_old_sessions periodically on the running loop.

        The runtime normally drives the sweep from its scheduler; this is for
        standalone use.
        """
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(max_age, interval))
        return self._sweeper

    async def _sweep_forever(self, max_age: timedelta, interval: timedelta) -> None:
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                self.cleanup_old_sessions(max_age)
            except Exception as e:
                logger.error("Session sweep failed", e)

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    def get_stats(self) -> dict[str, Any]:
        with self._map_lock:
            sessions = list(self._sessions.values())
        total_messages = sum(len(s.messages) for s in sessions)
        return {
            "sessions": len(sessions),
            "total_messages": total_messages,
            "max_messages_per_session": self.max_messages_per_session,
            "max_tokens_per_session": self.max_tokens_per_session,
        }
