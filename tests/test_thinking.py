from datetime import datetime, timedelta

import pytest

from nanobot.agent import ThinkingTracker, ThoughtStatus
from nanobot.exceptions import InvalidStateError, ResourceExhaustedError, UnknownThoughtError


class RecordingListener:
    def __init__(self):
        self.calls = []

    def on_thought_started(self, thought_id, prompt):
        self.calls.append(("started", thought_id))

    def on_thought_step(self, thought_id, step, content):
        self.calls.append(("step", step))

    def on_thought_completed(self, thought_id, summary):
        self.calls.append(("completed", summary))


def test_thought_lifecycle_and_trace():
    tracker = ThinkingTracker()
    thought_id = tracker.start_thinking("Find the bug", model="m1")
    tracker.add_step(thought_id, "Read the logs")
    tracker.add_step(thought_id, "Found a null check")
    tracker.complete_thinking(thought_id, "Missing null check")

    thought = tracker.get_thought(thought_id)
    assert thought.status == ThoughtStatus.COMPLETED
    assert [s.step_number for s in thought.steps] == [1, 2]

    block = tracker.format_thinking_for_context(thought_id)
    assert block.splitlines() == [
        "<thinking>",
        "[Step 1] Read the logs",
        "[Step 2] Found a null check",
        "Conclusion: Missing null check",
        "</thinking>",
    ]
    trace = tracker.format_thinking_trace(thought_id)
    assert "Status: completed" in trace
    assert "2. Found a null check" in trace


def test_step_limit():
    tracker = ThinkingTracker(max_steps_per_thought=2)
    thought_id = tracker.start_thinking("prompt")
    tracker.add_step(thought_id, "one")
    tracker.add_step(thought_id, "two")

    with pytest.raises(ResourceExhaustedError):
        tracker.add_step(thought_id, "three")


def test_steps_rejected_after_completion_and_for_unknown_ids():
    tracker = ThinkingTracker()
    thought_id = tracker.start_thinking("prompt")
    tracker.fail_thinking(thought_id, "model down")

    with pytest.raises(InvalidStateError):
        tracker.add_step(thought_id, "late")
    with pytest.raises(UnknownThoughtError):
        tracker.add_step("thought_404", "step")

    assert tracker.get_thought(thought_id).error == "model down"
    assert tracker.format_thinking_for_context("thought_404") == ""


def test_listeners_are_notified_and_failures_isolated():
    tracker = ThinkingTracker()
    listener = RecordingListener()

    class Broken:
        def on_thought_started(self, thought_id, prompt):
            raise RuntimeError("boom")

    tracker.add_listener(Broken())
    tracker.add_listener(listener)

    thought_id = tracker.start_thinking("prompt")
    tracker.add_step(thought_id, "step")
    tracker.complete_thinking(thought_id, "done")

    assert listener.calls == [("started", thought_id), ("step", 1), ("completed", "done")]

    tracker.remove_listener(listener)
    tracker.start_thinking("again")
    assert len(listener.calls) == 3


def test_cleanup_and_stats():
    tracker = ThinkingTracker()
    old = tracker.start_thinking("old")
    tracker.complete_thinking(old, "done")
    tracker.get_thought(old).completed_at = datetime.now() - timedelta(hours=2)
    tracker.start_thinking("active")

    assert tracker.cleanup(timedelta(hours=1)) == 1
    assert tracker.get_stats() == {
        "active_thoughts": 1,
        "total_thoughts": 1,
        "completed": 0,
        "failed": 0,
    }
