"""
Thinking Tracker
================

Records the reasoning trace of agent requests for transparency: each request
opens a thought, every loop iteration adds a step, and the thought ends as
completed, failed or cancelled.

Listeners are notified of every transition; a failing listener is logged and
skipped.
"""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from nanobot.exceptions import InvalidStateError, ResourceExhaustedError, UnknownThoughtError
from nanobot.utils.logger import Logger

logger = Logger("Thinking")


class ThoughtStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ThoughtListener(Protocol):
    def on_thought_started(self, thought_id: str, prompt: str) -> None: ...
    def on_thought_step(self, thought_id: str, step: int, content: str) -> None: ...
    def on_thought_completed(self, thought_id: str, summary: str) -> None: ...
    def on_thought_failed(self, thought_id: str, error: str) -> None: ...


@dataclass
class ThoughtStep:
    step_number: int
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_number,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class ThoughtProcess:
    id: str
    prompt: str
    model: str | None = None
    status: ThoughtStatus = ThoughtStatus.ACTIVE
    steps: list[ThoughtStep] = field(default_factory=list)
    summary: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def duration(self) -> timedelta:
        end = self.completed_at or datetime.now()
        return end - self.created_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "model": self.model,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "summary": self.summary,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": int(self.duration.total_seconds() * 1000),
        }


class ThinkingTracker:
    """
    Tracks thought processes by id.

    Example:
        tracker = ThinkingTracker(max_steps_per_thought=20)
        thought_id = tracker.start_thinking("Summarize the logs", model="gpt-4o-mini")
        tracker.add_step(thought_id, "Reading log files")
        tracker.complete_thinking(thought_id, "Two errors found")
        print(tracker.format_thinking_trace(thought_id))
    """

    def __init__(self, max_steps_per_thought: int = 50):
        self.max_steps_per_thought = max_steps_per_thought
        self._thoughts: dict[str, ThoughtProcess] = {}
        self._listeners: list[ThoughtListener] = []
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start_thinking(self, prompt: str, model: str | None = None) -> str:
        with self._lock:
            thought_id = f"thought_{next(self._counter)}"
            self._thoughts[thought_id] = ThoughtProcess(id=thought_id, prompt=prompt, model=model)

        self._notify("on_thought_started", thought_id, prompt)
        return thought_id

    def add_step(
        self,
        thought_id: str,
        content: str,
        metadata: dict[str, Any] | None = None
    ) -> ThoughtStep:
        """
        Append a reasoning step to an active thought.

        Raises:
            UnknownThoughtError: If the id is unknown
            InvalidStateError: If the thought is no longer active
            ResourceExhaustedError: If the thought already has the maximum steps
        """
        thought = self._require(thought_id)
        with self._lock:
            if thought.status != ThoughtStatus.ACTIVE:
                raise InvalidStateError(f"Thought {thought_id} is not active")
            if len(thought.steps) >= self.max_steps_per_thought:
                raise ResourceExhaustedError(
                    f"Thought {thought_id} reached {self.max_steps_per_thought} steps"
                )
            step = ThoughtStep(len(thought.steps) + 1, content, metadata=dict(metadata or {}))
            thought.steps.append(step)

        self._notify("on_thought_step", thought_id, step.step_number, content)
        return step

    def complete_thinking(self, thought_id: str, summary: str) -> None:
        thought = self._require(thought_id)
        thought.summary = summary
        self._finish(thought, ThoughtStatus.COMPLETED)
        self._notify("on_thought_completed", thought_id, summary)

    def fail_thinking(self, thought_id: str, error: str) -> None:
        thought = self._require(thought_id)
        thought.error = error
        self._finish(thought, ThoughtStatus.FAILED)
        self._notify("on_thought_failed", thought_id, error)

    def cancel_thinking(self, thought_id: str) -> None:
        self._finish(self._require(thought_id), ThoughtStatus.CANCELLED)

    def _finish(self, thought: ThoughtProcess, status: ThoughtStatus) -> None:
        with self._lock:
            thought.status = status
            thought.completed_at = datetime.now()

    def _require(self, thought_id: str) -> ThoughtProcess:
        thought = self._thoughts.get(thought_id)
        if thought is None:
            raise UnknownThoughtError(thought_id)
        return thought

    def get_thought(self, thought_id: str) -> ThoughtProcess | None:
        return self._thoughts.get(thought_id)

    # ==========================================================================
    # Formatting
    # ==========================================================================

    def format_thinking_for_context(self, thought_id: str) -> str:
        """Render a thought as a <thinking> block for inclusion in a prompt."""
        thought = self._thoughts.get(thought_id)
        if thought is None:
            return ""

        lines = ["<thinking>"]
        lines.extend(f"[Step {s.step_number}] {s.content}" for s in thought.steps)
        if thought.summary is not None:
            lines.append(f"Conclusion: {thought.summary}")
        lines.append("</thinking>")
        return "\n".join(lines)

    def format_thinking_trace(self, thought_id: str) -> str:
        """Human-readable trace for the CLI."""
        thought = self._thoughts.get(thought_id)
        if thought is None:
            return f"Unknown thought: {thought_id}"

        duration_ms = int(thought.duration.total_seconds() * 1000)
        lines = [
            f"Thought {thought_id} ({thought.model})",
            f"Status: {thought.status.value} | Duration: {duration_ms}ms",
            "",
        ]
        lines.extend(f"{s.step_number}. {s.content}" for s in thought.steps)
        if thought.summary is not None:
            lines.append(f"\n→ {thought.summary}")
        if thought.error is not None:
            lines.append(f"\n✗ Error: {thought.error}")
        return "\n".join(lines)

    # ==========================================================================
    # Listeners
    # ==========================================================================

    def add_listener(self, listener: ThoughtListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ThoughtListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, method: str, *args: Any) -> None:
        for listener in list(self._listeners):
            callback = getattr(listener, method, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Thought listener {method} failed", e)

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def cleanup(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """Forget finished thoughts older than max_age. Active ones are kept."""
        cutoff = datetime.now() - max_age
        with self._lock:
            stale = [
                tid for tid, t in self._thoughts.items()
                if t.completed_at is not None and t.completed_at < cutoff
            ]
            for tid in stale:
                del self._thoughts[tid]
        return len(stale)

    def get_stats(self) -> dict[str, Any]:
        thoughts = list(self._thoughts.values())
        return {
            "active_thoughts": sum(1 for t in thoughts if t.status == ThoughtStatus.ACTIVE),
            "total_thoughts": len(thoughts),
            "completed": sum(1 for t in thoughts if t.status == ThoughtStatus.COMPLETED),
            "failed": sum(1 for t in thoughts if t.status == ThoughtStatus.FAILED),
        }
