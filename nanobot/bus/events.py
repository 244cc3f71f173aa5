"""
Bus Events
==========

Envelopes carried by the two buses:

- Message: the unit routed by the MessageBus between channels and the agent
- Event: a typed notification published on the EventBus for observers
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    """Direction or purpose of a bus message."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    SYSTEM = "system"
    COMMAND = "command"
    RESPONSE = "response"


@dataclass(frozen=True)
class Message:
    """
    A message routed by the MessageBus.

    Messages are immutable once built; only metadata may be extended via
    add_metadata().

    Attributes:
        channel: Bus channel (topic) the message is routed on
        sender_id: Who produced the message
        chat_id: Conversation identifier, used as the agent session key
        content: Message text
        type: Direction of the message
        metadata: Open key/value map (origin channel, thread ids, ...)
        id: Unique message id
        timestamp: Creation time
    """
    channel: str
    sender_id: str
    chat_id: str
    content: str
    type: MessageType = MessageType.INBOUND
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "sender_id": self.sender_id,
            "chat_id": self.chat_id,
            "content": self.content,
            "type": self.type.value,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }


class EventType(str, Enum):
    """Everything the EventBus can announce."""
    # Message events
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    MESSAGE_SENT = "MESSAGE_SENT"
    MESSAGE_ERROR = "MESSAGE_ERROR"

    # Agent events
    AGENT_STARTED = "AGENT_STARTED"
    AGENT_STOPPED = "AGENT_STOPPED"
    AGENT_THINKING = "AGENT_THINKING"
    AGENT_RESPONSE = "AGENT_RESPONSE"

    # Tool events
    TOOL_CALLED = "TOOL_CALLED"
    TOOL_STARTED = "TOOL_STARTED"
    TOOL_COMPLETED = "TOOL_COMPLETED"
    TOOL_FAILED = "TOOL_FAILED"

    # Lifecycle events
    BOT_STARTED = "BOT_STARTED"
    BOT_STOPPED = "BOT_STOPPED"
    BOT_READY = "BOT_READY"

    # Session events
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_TIMEOUT = "SESSION_TIMEOUT"

    # Errors
    ERROR_OCCURRED = "ERROR_OCCURRED"
    RATE_LIMITED = "RATE_LIMITED"

    CUSTOM = "CUSTOM"


@dataclass
class Event:
    """A typed notification on the EventBus."""
    event_type: EventType
    source: str
    data: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def session_id(self) -> str:
        return str(self.data.get("session_id", ""))

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "source": self.source,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
        }


# ==============================================================================
# Event factories
# ==============================================================================

def message_received(channel: str, chat_id: str, sender_id: str, content: str) -> Event:
    return Event(EventType.MESSAGE_RECEIVED, channel, {
        "channel": channel,
        "chat_id": chat_id,
        "sender_id": sender_id,
        "content": content,
    })


def message_sent(channel: str, chat_id: str, content: str) -> Event:
    return Event(EventType.MESSAGE_SENT, channel, {
        "channel": channel,
        "chat_id": chat_id,
        "content": content,
    })


def agent_thinking(session_id: str, thought: str) -> Event:
    return Event(EventType.AGENT_THINKING, "agent", {"session_id": session_id, "thought": thought})


def agent_response(session_id: str, response: str) -> Event:
    return Event(EventType.AGENT_RESPONSE, "agent", {"session_id": session_id, "response": response})


def tool_called(tool_name: str, arguments: dict[str, Any], session_id: str = "") -> Event:
    return Event(EventType.TOOL_CALLED, "tool", {
        "tool_name": tool_name,
        "arguments": arguments,
        "session_id": session_id,
    })


def tool_completed(tool_name: str, result: Any, session_id: str = "") -> Event:
    return Event(EventType.TOOL_COMPLETED, "tool", {
        "tool_name": tool_name,
        "result": result,
        "session_id": session_id,
    })


def tool_failed(tool_name: str, error: str, session_id: str = "") -> Event:
    return Event(EventType.TOOL_FAILED, "tool", {
        "tool_name": tool_name,
        "error": error,
        "session_id": session_id,
    })


def error_occurred(source: str, error: str, exception: BaseException | None = None) -> Event:
    return Event(EventType.ERROR_OCCURRED, source, {
        "error": error,
        "exception": repr(exception) if exception is not None else None,
    })
