"""
Event Bus
=========

Typed observer notifications (tool calls, agent responses, errors) with a
bounded in-memory log for inspection.

Unlike the MessageBus this bus is not a transport: publish() dispatches
synchronously to the handlers of the event's type and records the event in a
ring log. Coroutine handlers are scheduled as tasks on the running loop.

Example:
    events = EventBus(max_log_size=500)
    events.start()
    events.subscribe(EventType.TOOL_FAILED, lambda e: print(e.get("error")))
    events.publish_tool_failed("bash", "command blocked")
"""

import asyncio
import inspect
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from nanobot.bus import events as factories
from nanobot.bus.events import Event, EventType
from nanobot.utils.logger import Logger

logger = Logger("EventBus")

EventHandler = Callable[[Event], Awaitable[None] | None]


class EventBus:
    """Synchronous pub/sub over EventType with a bounded event log."""

    def __init__(self, max_log_size: int = 1000):
        self.max_log_size = max_log_size
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._tagged: dict[str, list[EventHandler]] = {}
        self._log: deque[Event] = deque(maxlen=max_log_size)
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        logger.debug("Event bus started")

    def stop(self) -> None:
        self._running = False
        logger.debug("Event bus stopped")

    # ==========================================================================
    # Subscriptions
    # ==========================================================================

    def subscribe(
        self,
        event_type: EventType,
        handler: EventHandler,
        tag: str | None = None
    ) -> None:
        """
        Register a handler for an event type.

        A tag additionally files the handler under "<TYPE>:<tag>" so reply()
        can address it without notifying every subscriber.
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            if tag is not None:
                self._tagged.setdefault(self._tag_key(event_type, tag), []).append(handler)

    def unsubscribe(
        self,
        event_type: EventType,
        handler: EventHandler,
        tag: str | None = None
    ) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
            if tag is not None:
                key = self._tag_key(event_type, tag)
                tagged = self._tagged.get(key, [])
                if handler in tagged:
                    tagged.remove(handler)
                if not tagged:
                    self._tagged.pop(key, None)

    @staticmethod
    def _tag_key(event_type: EventType, tag: str) -> str:
        return f"{event_type.value}:{tag}"

    # ==========================================================================
    # Publishing
    # ==========================================================================

    def publish(self, event: Event) -> None:
        """Record the event and notify its handlers. No-op while stopped."""
        if not self._running:
            return

        self._record(event)

        with self._lock:
            handlers = list(self._handlers.get(event.event_type, ()))

        for handler in handlers:
            self._call(handler, event)

    def publish_async(self, event: Event) -> asyncio.Task | None:
        """Publish from a separate task on the running loop."""
        if not self._running:
            return None
        return self._track(asyncio.create_task(self._publish_later(event, 0)))

    def publish_delayed(self, event: Event, delay: float) -> asyncio.Task | None:
        """Publish after `delay` seconds."""
        if not self._running:
            return None
        return self._track(asyncio.create_task(self._publish_later(event, delay)))

    async def _publish_later(self, event: Event, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self.publish(event)

    def _call(self, handler: EventHandler, event: Event) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(self._await_handler(result, event)))
        except Exception as e:
            logger.error(f"Event handler error for {event.event_type.value}", e)

    async def _await_handler(self, result: Awaitable[Any], event: Event) -> None:
        try:
            await result
        except Exception as e:
            logger.error(f"Async event handler error for {event.event_type.value}", e)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Convenience publishers ---------------------------------------------------

    def publish_message_received(self, channel: str, chat_id: str, sender_id: str, content: str) -> None:
        self.publish(factories.message_received(channel, chat_id, sender_id, content))

    def publish_message_sent(self, channel: str, chat_id: str, content: str) -> None:
        self.publish(factories.message_sent(channel, chat_id, content))

    def publish_agent_thinking(self, session_id: str, thought: str) -> None:
        self.publish(factories.agent_thinking(session_id, thought))

    def publish_agent_response(self, session_id: str, response: str) -> None:
        self.publish(factories.agent_response(session_id, response))

    def publish_tool_called(self, tool_name: str, arguments: dict[str, Any], session_id: str = "") -> None:
        self.publish(factories.tool_called(tool_name, arguments, session_id))

    def publish_tool_completed(self, tool_name: str, result: Any, session_id: str = "") -> None:
        self.publish(factories.tool_completed(tool_name, result, session_id))

    def publish_tool_failed(self, tool_name: str, error: str, session_id: str = "") -> None:
        self.publish(factories.tool_failed(tool_name, error, session_id))

    def publish_error(self, source: str, error: str, exception: BaseException | None = None) -> None:
        self.publish(factories.error_occurred(source, error, exception))

    # ==========================================================================
    # Request / reply
    # ==========================================================================

    async def request(self, request: Event, timeout: float) -> Any:
        """
        Publish a request and wait for the first reply() to it.

        Returns:
            The reply value, or None when nobody replied within `timeout`
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        tag = f"request-{request.event_id}"

        def on_reply(event: Event) -> None:
            if event.get("original_event_id") == request.event_id and not future.done():
                future.set_result(event.get("reply"))

        self.subscribe(request.event_type, on_reply, tag=tag)
        try:
            self.publish(request)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            self.unsubscribe(request.event_type, on_reply, tag=tag)

    def reply(self, request: Event, value: Any) -> None:
        """Deliver a reply only to the handler waiting on `request`."""
        reply_event = Event(
            request.event_type,
            "system",
            {"reply": value, "original_event_id": request.event_id},
        )
        with self._lock:
            handlers = list(self._tagged.get(self._tag_key(request.event_type, f"request-{request.event_id}"), ()))

        for handler in handlers:
            self._call(handler, reply_event)

    # ==========================================================================
    # Event log
    # ==========================================================================

    def _record(self, event: Event) -> None:
        with self._lock:
            self._log.append(event)

    def get_recent_events(self, limit: int | None = None) -> list[Event]:
        with self._lock:
            events = list(self._log)
        return events[-limit:] if limit else events

    def get_events_by_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.get_recent_events() if e.event_type == event_type]

    def get_events_by_session(self, session_id: str) -> list[Event]:
        return [e for e in self.get_recent_events() if e.session_id == session_id]

    def clear_log(self) -> None:
        with self._lock:
            self._log.clear()

    def cleanup_old_events(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """
        Drop logged events older than max_age.

        Returns:
            Number of events removed
        """
        cutoff = datetime.now() - max_age
        with self._lock:
            kept = [e for e in self._log if e.timestamp >= cutoff]
            removed = len(self._log) - len(kept)
            self._log = deque(kept, maxlen=self.max_log_size)

        if removed:
            logger.debug(f"Removed {removed} old events from the log")
        return removed

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total_handlers = sum(len(h) for h in self._handlers.values())
            event_types = sum(1 for h in self._handlers.values() if h)
            events_by_type: dict[str, int] = {}
            for event in self._log:
                key = event.event_type.value
                events_by_type[key] = events_by_type.get(key, 0) + 1
            log_size = len(self._log)

        return {
            "total_event_types": event_types,
            "total_handlers": total_handlers,
            "log_size": log_size,
            "running": self._running,
            "events_by_type": events_by_type,
        }
