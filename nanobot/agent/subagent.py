"""
Subagent Manager
================

Runs independent, fire-and-forget reasoning tasks in the background.

create_subagent() returns an id right away; the task runs as its own asyncio
task through an injected executor (normally AgentLoop.run_task). Callers poll
or wait for the outcome by id.

Status transitions are one-way:

    pending ──► running ──► completed
                   │    └─► failed
                   └──────► cancelled

Cancellation is advisory: it marks the record, it does not interrupt the
running executor. A cancelled record stays cancelled when the executor later
finishes.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from nanobot.exceptions import (
    InvalidStateError,
    SubagentCancelledError,
    SubagentFailedError,
    SubagentTimeoutError,
    UnknownSubagentError,
)
from nanobot.utils.logger import Logger

logger = Logger("Subagents")

# (task, system_prompt, model) -> result
SubagentExecutor = Callable[[str, str | None, str | None], Awaitable[str]]


class SubagentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SubagentStatus.COMPLETED, SubagentStatus.FAILED, SubagentStatus.CANCELLED)


@dataclass
class Subagent:
    id: str
    task: str
    system_prompt: str | None = None
    model: str | None = None
    isolation_level: str = "none"
    status: SubagentStatus = SubagentStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    result: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task": self.task,
            "model": self.model,
            "isolation_level": self.isolation_level,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error": self.error,
        }


class SubagentManager:
    """
    Tracks background subagents by id.

    Example:
        manager = SubagentManager(agent.run_task)

        sub_id = manager.create_subagent("Research the latest Python release")
        result = await manager.wait_for_subagent(sub_id, timeout=120)
    """

    # Seconds between status checks in wait_for_subagent
    POLL_INTERVAL = 0.1

    def __init__(self, executor: SubagentExecutor, workspace: Path | None = None):
        self.executor = executor
        self.workspace = workspace
        self._subagents: dict[str, Subagent] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._counter = itertools.count(1)

    # ==========================================================================
    # Creation and Execution
    # ==========================================================================

    def create_subagent(
        self,
        task: str,
        system_prompt: str | None = None,
        model: str | None = None,
        isolation_level: str = "none"
    ) -> str:
        """
        Schedule a background task and return its id without waiting.

        Must be called from within the running event loop.
        """
        subagent_id = f"sub_{next(self._counter)}"
        subagent = Subagent(
            id=subagent_id,
            task=task,
            system_prompt=system_prompt,
            model=model,
            isolation_level=isolation_level,
        )
        self._subagents[subagent_id] = subagent

        task_handle = asyncio.create_task(self._run(subagent), name=subagent_id)
        self._tasks[subagent_id] = task_handle
        task_handle.add_done_callback(lambda _: self._tasks.pop(subagent_id, None))

        logger.info(f"Created subagent {subagent_id}: {task[:50]}")
        return subagent_id

    async def _run(self, subagent: Subagent) -> None:
        subagent.status = SubagentStatus.RUNNING

        try:
            result = await self.executor(subagent.task, subagent.system_prompt, subagent.model)
        except Exception as e:
            if subagent.status == SubagentStatus.CANCELLED:
                return
            subagent.error = str(e) or type(e).__name__
            subagent.status = SubagentStatus.FAILED
            subagent.completed_at = datetime.now()
            logger.error(f"Subagent {subagent.id} failed", e)
            return

        if subagent.status == SubagentStatus.CANCELLED:
            logger.debug(f"Subagent {subagent.id} finished after cancellation; result dropped")
            return

        subagent.result = result
        subagent.status = SubagentStatus.COMPLETED
        subagent.completed_at = datetime.now()
        logger.info(f"Subagent {subagent.id} completed")

    # ==========================================================================
    # Waiting and Cancellation
    # ==========================================================================

    async def wait_for_subagent(self, subagent_id: str, timeout: float) -> str:
        """
        Wait until a subagent finishes and return its result.

        Args:
            subagent_id: Id returned by create_subagent
            timeout: Seconds to wait

        Raises:
            UnknownSubagentError: If the id is unknown
            SubagentTimeoutError: If it is still pending or running at the deadline
            SubagentCancelledError: If it was cancelled
            SubagentFailedError: If the executor failed; carries the error text
        """
        subagent = self._require(subagent_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while not subagent.status.is_terminal:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise SubagentTimeoutError(f"Subagent {subagent_id} did not finish within {timeout}s")
            await asyncio.sleep(min(self.POLL_INTERVAL, remaining))

        return self._outcome(subagent)

    def _outcome(self, subagent: Subagent) -> str:
        if subagent.status == SubagentStatus.CANCELLED:
            raise SubagentCancelledError(f"Subagent {subagent.id} was cancelled")
        if subagent.status == SubagentStatus.FAILED:
            raise SubagentFailedError(subagent.id, subagent.error or "")
        return subagent.result or ""

    def cancel_subagent(self, subagent_id: str) -> bool:
        """
        Mark a running subagent as cancelled.

        Returns:
            True if the subagent was running and is now cancelled
        """
        subagent = self._subagents.get(subagent_id)
        if subagent is None or subagent.status != SubagentStatus.RUNNING:
            return False

        subagent.status = SubagentStatus.CANCELLED
        subagent.completed_at = datetime.now()
        logger.info(f"Cancelled subagent {subagent_id}")
        return True

    # ==========================================================================
    # Queries
    # ==========================================================================

    def _require(self, subagent_id: str) -> Subagent:
        subagent = self._subagents.get(subagent_id)
        if subagent is None:
            raise UnknownSubagentError(subagent_id)
        return subagent

    def get_subagent(self, subagent_id: str) -> Subagent | None:
        return self._subagents.get(subagent_id)

    def get_subagent_result(self, subagent_id: str) -> str:
        """
        Result of a finished subagent.

        Raises:
            UnknownSubagentError: If the id is unknown
            InvalidStateError: If it has not finished yet
            SubagentCancelledError: If it was cancelled
            SubagentFailedError: If it failed
        """
        subagent = self._require(subagent_id)
        if not subagent.status.is_terminal:
            raise InvalidStateError(f"Subagent {subagent_id} is {subagent.status.value}")
        return self._outcome(subagent)

    def get_active_subagents(self) -> list[Subagent]:
        return [s for s in self._subagents.values() if not s.status.is_terminal]

    def get_all_subagents(self) -> list[Subagent]:
        return list(self._subagents.values())

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def cleanup(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """Remove finished subagents older than max_age. Active ones are never swept."""
        cutoff = datetime.now() - max_age
        stale = [
            sid for sid, s in self._subagents.items()
            if s.completed_at is not None and s.completed_at < cutoff
        ]
        for sid in stale:
            del self._subagents[sid]

        if stale:
            logger.debug(f"Cleaned up {len(stale)} subagents")
        return len(stale)

    def get_stats(self) -> dict[str, Any]:
        counts = {status.value: 0 for status in SubagentStatus}
        for subagent in self._subagents.values():
            counts[subagent.status.value] += 1
        return {
            "total": len(self._subagents),
            "active": counts["pending"] + counts["running"],
            **counts,
        }
