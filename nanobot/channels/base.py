"""
Channel Base
============

A channel adapts one chat surface (terminal, Slack, ...) to the message bus.

Flow:
    user text ──► on_message() ──► bus inbound on the agent channel
                                   (metadata "origin" = channel name)

    bus outbound on the channel name ──► send(chat_id, content, metadata)

The core never calls a channel directly; everything goes through bus
subscriptions.
"""

from abc import ABC, abstractmethod
from typing import Any

from nanobot.bus.events import Message, MessageType
from nanobot.bus.message_bus import MessageBus
from nanobot.utils.logger import Logger


class Channel(ABC):
    """
    Base class for chat channel adapters.

    Subclasses implement connect(), disconnect() and send(); the base class
    handles bus wiring.

    Example:
        class EchoChannel(Channel):
            async def connect(self): ...
            async def disconnect(self): ...
            async def send(self, chat_id, content, metadata):
                print(chat_id, content)

        channel = EchoChannel(bus, "echo")
        await channel.start()
        channel.on_message("chat-1", "user-1", "hello")
    """

    def __init__(self, bus: MessageBus, name: str, agent_channel: str = "agent"):
        self.bus = bus
        self.name = name
        self.agent_channel = agent_channel
        self.logger = Logger(f"Channel:{name}")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        if self._running:
            return
        self.bus.subscribe(self.name, self._handle_outbound)
        await self.connect()
        self._running = True
        self.on_connect()

    async def stop(self) -> None:
        if not self._running:
            return
        self.bus.unsubscribe(self.name, self._handle_outbound)
        self._running = False
        await self.disconnect()
        self.on_disconnect()

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection to the chat surface."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the chat surface."""

    @abstractmethod
    async def send(self, chat_id: str, content: str, metadata: dict[str, Any]) -> None:
        """Deliver an agent answer to a chat."""

    # ==========================================================================
    # Routing
    # ==========================================================================

    def on_message(
        self,
        chat_id: str,
        sender_id: str,
        text: str,
        metadata: dict[str, Any] | None = None
    ) -> Message:
        """Hand a user message to the agent through the bus."""
        self.logger.debug(f"Message from {sender_id} in {chat_id}: {text[:50]}")
        return self.bus.publish_inbound(
            self.agent_channel,
            sender_id=sender_id,
            chat_id=chat_id,
            content=text,
            metadata={**(metadata or {}), "origin": self.name},
        )

    async def _handle_outbound(self, message: Message) -> None:
        if message.type not in (MessageType.OUTBOUND, MessageType.RESPONSE):
            return
        try:
            await self.send(message.chat_id, message.content, dict(message.metadata))
        except Exception as e:
            self.on_error(f"Failed to deliver to {message.chat_id}: {e}")
            raise

    # ==========================================================================
    # Hooks
    # ==========================================================================

    def on_connect(self) -> None:
        self.logger.info(f"Channel '{self.name}' connected")

    def on_disconnect(self) -> None:
        self.logger.info(f"Channel '{self.name}' disconnected")

    def on_error(self, error: str) -> None:
        self.logger.error(error)

    def get_stats(self) -> dict[str, Any]:
        return {"name": self.name, "agent_channel": self.agent_channel, "running": self._running}
