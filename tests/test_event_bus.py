import asyncio
from datetime import datetime, timedelta

import pytest

from nanobot.bus import Event, EventBus, EventType


@pytest.fixture
def events():
    bus = EventBus(max_log_size=5)
    bus.start()
    return bus


def test_publish_notifies_handlers_of_the_type(events):
    seen = []
    events.subscribe(EventType.TOOL_FAILED, seen.append)
    events.subscribe(EventType.TOOL_COMPLETED, lambda e: seen.append("wrong"))

    events.publish_tool_failed("bash", "blocked", session_id="cli:1")

    assert len(seen) == 1
    assert seen[0].get("tool_name") == "bash"
    assert seen[0].session_id == "cli:1"


def test_publish_while_stopped_is_noop():
    events = EventBus()
    seen = []
    events.subscribe(EventType.CUSTOM, seen.append)

    events.publish(Event(EventType.CUSTOM, "test"))

    assert seen == []
    assert events.get_recent_events() == []


def test_handler_errors_are_isolated(events):
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    events.subscribe(EventType.CUSTOM, broken)
    events.subscribe(EventType.CUSTOM, seen.append)

    events.publish(Event(EventType.CUSTOM, "test"))

    assert len(seen) == 1


def test_log_is_bounded(events):
    for i in range(8):
        events.publish(Event(EventType.CUSTOM, "test", {"i": i}))

    recent = events.get_recent_events()
    assert [e.get("i") for e in recent] == [3, 4, 5, 6, 7]
    assert [e.get("i") for e in events.get_recent_events(limit=2)] == [6, 7]


def test_filters_by_type_and_session(events):
    events.publish_agent_thinking("s1", "step")
    events.publish_agent_response("s1", "done")
    events.publish_agent_response("s2", "done")

    assert len(events.get_events_by_type(EventType.AGENT_RESPONSE)) == 2
    assert len(events.get_events_by_session("s1")) == 2


def test_cleanup_old_events(events):
    old = Event(EventType.CUSTOM, "test", timestamp=datetime.now() - timedelta(hours=2))
    events.publish(old)
    events.publish(Event(EventType.CUSTOM, "test"))

    assert events.cleanup_old_events(timedelta(hours=1)) == 1
    assert len(events.get_recent_events()) == 1


def test_unsubscribe(events):
    seen = []
    events.subscribe(EventType.CUSTOM, seen.append)
    events.unsubscribe(EventType.CUSTOM, seen.append)

    events.publish(Event(EventType.CUSTOM, "test"))

    assert seen == []


@pytest.mark.asyncio
async def test_coroutine_handlers_are_scheduled(events):
    done = asyncio.Event()

    async def handler(event):
        done.set()

    events.subscribe(EventType.BOT_READY, handler)
    events.publish(Event(EventType.BOT_READY, "runtime"))

    await asyncio.wait_for(done.wait(), timeout=1)


@pytest.mark.asyncio
async def test_request_reply(events):
    def responder(event):
        if event.get("question") == "ping":
            events.reply(event, "pong")

    events.subscribe(EventType.CUSTOM, responder)

    answer = await events.request(Event(EventType.CUSTOM, "test", {"question": "ping"}), timeout=1)

    assert answer == "pong"


@pytest.mark.asyncio
async def test_request_times_out_with_none(events):
    answer = await events.request(Event(EventType.CUSTOM, "test"), timeout=0.05)
    assert answer is None


@pytest.mark.asyncio
async def test_publish_delayed(events):
    seen = []
    events.subscribe(EventType.CUSTOM, seen.append)

    task = events.publish_delayed(Event(EventType.CUSTOM, "test"), delay=0.01)
    assert seen == []
    await task

    assert len(seen) == 1


def test_stats(events):
    events.subscribe(EventType.CUSTOM, lambda e: None)
    events.publish(Event(EventType.CUSTOM, "test"))

    stats = events.get_stats()
    assert stats["total_handlers"] == 1
    assert stats["log_size"] == 1
    assert stats["events_by_type"] == {"CUSTOM": 1}
