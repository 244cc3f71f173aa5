"""
Bus System
==========

Two buses connect the runtime:

- MessageBus: queue-backed transport between channels and the agent loop
- EventBus: synchronous typed notifications with a bounded inspection log
"""

from nanobot.bus.events import Event, EventType, Message, MessageType
from nanobot.bus.message_bus import MessageBus, MessageHandler
from nanobot.bus.event_bus import EventBus, EventHandler

__all__ = [
    "Event",
    "EventType",
    "Message",
    "MessageType",
    "MessageBus",
    "MessageHandler",
    "EventBus",
    "EventHandler",
]
