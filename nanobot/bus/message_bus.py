"""
Message Bus
===========

Decouples producers (channels, CLI, cron) from consumers (the agent loop,
channel adapters) through named channels.

Flow:
    publish_inbound / publish_outbound
         │
         ▼
    inbound / outbound asyncio.Queue (unbounded, FIFO)
         │
         ▼
    consumer task (polls with a short timeout so stop() is graceful)
         │
         ▼
    one task per subscribed handler

Handler failures are caught and logged at the dispatch site; they never reach
sibling handlers or the consumer loops. Delivery is at-most-once per handler.
"""

import asyncio
import inspect
import threading
from typing import Any, Awaitable, Callable

from nanobot.bus.events import Message, MessageType
from nanobot.utils.logger import Logger

logger = Logger("MessageBus")

MessageHandler = Callable[[Message], Awaitable[None] | None]


class MessageBus:
    """
    Pub/sub transport with inbound and outbound queues.

    Example:
        bus = MessageBus()
        bus.subscribe("agent", handle_agent_message)
        bus.start()

        bus.publish_inbound("agent", sender_id="U1", chat_id="C1", content="hi")
        ...
        await bus.stop()
    """

    # Seconds a consumer waits on an empty queue before re-checking running
    POLL_TIMEOUT = 0.1

    def __init__(self):
        self._subscriptions: dict[str, set[MessageHandler]] = {}
        self._lock = threading.Lock()
        self._inbound: asyncio.Queue[Message] = asyncio.Queue()
        self._outbound: asyncio.Queue[Message] = asyncio.Queue()
        self._consumers: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._running = False

        self._published = 0
        self._dispatched = 0
        self._handler_errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start(self) -> None:
        """Start the inbound and outbound consumers on the running loop."""
        if self._running:
            return

        self._running = True
        self._consumers = [
            asyncio.create_task(self._consume(self._inbound, "inbound")),
            asyncio.create_task(self._consume(self._outbound, "outbound")),
        ]
        logger.info("Message bus started")

    async def stop(self) -> None:
        """
        Stop accepting queued work.

        The consumers exit within one poll timeout. Handler tasks already
        running are left to finish on their own.
        """
        if not self._running:
            return

        self._running = False
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        logger.info("Message bus stopped")

    # ==========================================================================
    # Subscriptions
    # ==========================================================================

    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Add a handler for a channel. Plain and coroutine functions both work."""
        with self._lock:
            self._subscriptions.setdefault(channel, set()).add(handler)
        logger.debug(f"Subscribed handler to '{channel}'")

    def unsubscribe(self, channel: str, handler: MessageHandler) -> bool:
        """
        Remove a handler from a channel.

        Returns:
            True if the handler was subscribed
        """
        with self._lock:
            handlers = self._subscriptions.get(channel)
            if not handlers or handler not in handlers:
                return False
            handlers.discard(handler)
            if not handlers:
                del self._subscriptions[channel]
        return True

    def get_handlers(self, channel: str) -> list[MessageHandler]:
        """Snapshot of the handlers currently subscribed to a channel."""
        with self._lock:
            return list(self._subscriptions.get(channel, ()))

    # ==========================================================================
    # Publishing
    # ==========================================================================

    def publish_inbound(
        self,
        channel: str,
        sender_id: str,
        chat_id: str,
        content: str,
        metadata: dict[str, Any] | None = None
    ) -> Message:
        """Queue an inbound message and return it."""
        message = Message(
            channel=channel,
            sender_id=sender_id,
            chat_id=chat_id,
            content=content,
            type=MessageType.INBOUND,
            metadata=dict(metadata or {}),
        )
        self._enqueue(self._inbound, message)
        return message

    def publish_outbound(
        self,
        channel: str,
        sender_id: str,
        chat_id: str,
        content: str,
        metadata: dict[str, Any] | None = None
    ) -> Message:
        """Queue an outbound message and return it."""
        message = Message(
            channel=channel,
            sender_id=sender_id,
            chat_id=chat_id,
            content=content,
            type=MessageType.OUTBOUND,
            metadata=dict(metadata or {}),
        )
        self._enqueue(self._outbound, message)
        return message

    def publish(self, message: Message) -> int:
        """
        Fan a message out immediately, bypassing the queues.

        Must be called from within the running event loop.

        Returns:
            Number of handlers the message was handed to
        """
        self._published += 1
        return self._deliver(message)

    def _enqueue(self, queue: asyncio.Queue, message: Message) -> None:
        self._published += 1
        queue.put_nowait(message)

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def _consume(self, queue: asyncio.Queue, name: str) -> None:
        while self._running:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=self.POLL_TIMEOUT)
            except asyncio.TimeoutError:
                continue

            try:
                self._deliver(message)
            except Exception as e:
                logger.error(f"Failed to dispatch {name} message {message.id}", e)
            finally:
                queue.task_done()

    def _deliver(self, message: Message) -> int:
        handlers = self.get_handlers(message.channel)
        if not handlers:
            logger.debug(f"No subscribers for '{message.channel}', dropping {message.id}")
            return 0

        for handler in handlers:
            task = asyncio.create_task(self._invoke(handler, message))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

        self._dispatched += len(handlers)
        return len(handlers)

    async def _invoke(self, handler: MessageHandler, message: Message) -> None:
        try:
            result = handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._handler_errors += 1
            name = getattr(handler, "__qualname__", repr(handler))
            logger.error(f"Handler {name} failed on channel '{message.channel}'", e)

    async def join(self) -> None:
        """
        Wait until both queues are drained and every handler has finished,
        including messages published by handlers along the way.

        Only meaningful while the bus is running.
        """
        while True:
            await self._inbound.join()
            await self._outbound.join()
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
                continue
            if self._inbound.empty() and self._outbound.empty():
                return

    # ==========================================================================
    # Statistics
    # ==========================================================================

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            active_channels = len(self._subscriptions)
        return {
            "inbound_queue_size": self._inbound.qsize(),
            "outbound_queue_size": self._outbound.qsize(),
            "total_messages": self._published,
            "dispatched": self._dispatched,
            "handler_errors": self._handler_errors,
            "in_flight": len(self._inflight),
            "active_channels": active_channels,
            "running": self._running,
        }
