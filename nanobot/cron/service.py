"""
Cron Service
============

Time-triggers the agent with stored messages.

Two schedule kinds are supported:
- every: a fixed period in milliseconds
- cron: a single "minute" field N, meaning every N minutes

Anything richer (five-field cron grammar, calendars) is rejected. Both kinds
fire for the first time one period after they are scheduled.

Scheduling is handled by APScheduler's AsyncIOScheduler with IntervalTrigger
jobs. Job definitions are persisted as a flat JSON list and rewritten on every
add or remove, so jobs survive restarts:

    [
      {
        "id": "6f1c...",
        "name": "standup",
        "message": "Post the standup reminder",
        "deliver": true,
        "enabled": true,
        "channel": "slack",
        "chatId": "C123",
        "createdAt": 1718000000000,
        "lastRunAt": 0,
        "schedule": {"kind": "every", "everyMs": 3600000}
      }
    ]
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nanobot.utils.logger import Logger

logger = Logger("Cron")

# Bus channel for answers of deliver=True jobs that name no target channel
CRON_CHANNEL = "cron"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CronSchedule:
    """
    When a job fires.

    Attributes:
        kind: "every" or "cron"
        every_ms: Period for "every" schedules
        expression: Minute field for "cron" schedules
    """
    kind: str
    every_ms: int = 0
    expression: str | None = None

    @classmethod
    def every(cls, ms: int) -> "CronSchedule":
        return cls(kind="every", every_ms=int(ms))

    @classmethod
    def from_cron(cls, expression: str) -> "CronSchedule":
        return cls(kind="cron", expression=expression)

    def period_ms(self) -> int:
        """
        Firing period in milliseconds.

        Raises:
            ValueError: If the schedule is not one this service can run
        """
        if self.kind == "every":
            if self.every_ms <= 0:
                raise ValueError(f"Interval must be positive, got {self.every_ms}ms")
            return self.every_ms

        if self.kind == "cron":
            parts = (self.expression or "").split()
            if len(parts) != 1 or not parts[0].isdigit() or int(parts[0]) <= 0:
                raise ValueError(
                    f"Unsupported cron expression {self.expression!r}: "
                    "only a single minute field is supported, e.g. '15'"
                )
            return int(parts[0]) * 60 * 1000

        raise ValueError(f"Unknown schedule kind: {self.kind!r}")

    def describe(self) -> str:
        if self.kind == "cron":
            return f"every {self.expression} min"
        return f"every {self.every_ms / 1000:g}s"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.every_ms > 0:
            data["everyMs"] = self.every_ms
        if self.expression is not None:
            data["cron"] = self.expression
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CronSchedule":
        return cls(
            kind=data.get("kind", "every"),
            every_ms=int(data.get("everyMs", 0) or 0),
            expression=data.get("cron"),
        )


@dataclass
class CronJob:
    name: str
    schedule: CronSchedule
    message: str
    deliver: bool = False
    enabled: bool = True
    channel: str = CRON_CHANNEL
    chat_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: int = field(default_factory=_now_ms)
    last_run_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "message": self.message,
            "deliver": self.deliver,
            "enabled": self.enabled,
            "channel": self.channel,
            "chatId": self.chat_id,
            "createdAt": self.created_at,
            "lastRunAt": self.last_run_at,
            "schedule": self.schedule.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CronJob":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data["name"],
            message=data.get("message", ""),
            deliver=bool(data.get("deliver", False)),
            enabled=bool(data.get("enabled", True)),
            channel=data.get("channel") or CRON_CHANNEL,
            chat_id=data.get("chatId") or "",
            created_at=int(data.get("createdAt") or _now_ms()),
            last_run_at=int(data.get("lastRunAt") or 0),
            schedule=CronSchedule.from_dict(data.get("schedule") or {}),
        )


@dataclass
class ExecutedJob:
    """Outcome of one job firing."""
    job_id: str
    message: str
    result: Any
    duration_ms: int


CronExecutor = Callable[[CronJob], Awaitable[ExecutedJob]]


class CronService:
    """
    Persists and schedules cron jobs.

    Example:
        async def run(job: CronJob) -> ExecutedJob:
            answer = await agent.process(f"cron:{job.id}", job.message)
            return ExecutedJob(job.id, job.message, answer, 0)

        cron = CronService(Path("~/.nanobot/cron/jobs.json"), run)
        cron.start()
        cron.add_job("hourly-check", CronSchedule.every(3_600_000), "Check the build")
    """

    def __init__(
        self,
        store_path: Path,
        executor: CronExecutor,
        scheduler: AsyncIOScheduler | None = None
    ):
        """
        Initialize the service.

        Args:
            store_path: JSON file holding the job list
            executor: Coroutine run on every firing
            scheduler: Shared scheduler; one is created (and owned) if omitted
        """
        self.store_path = Path(store_path)
        self.executor = executor
        self.scheduler = scheduler or AsyncIOScheduler()
        self._owns_scheduler = scheduler is None

        self._jobs: dict[str, CronJob] = {}
        self._scheduled: set[str] = set()
        self._running = False

        self._executions = 0
        self._failures = 0

        self._load()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start(self) -> None:
        """Start scheduling enabled jobs from the store."""
        if self._running:
            return

        if self._owns_scheduler and not self.scheduler.running:
            self.scheduler.start()
        self._running = True

        for job in list(self._jobs.values()):
            if not job.enabled:
                continue
            try:
                self._schedule(job)
            except ValueError as e:
                logger.warning(f"Skipping job '{job.name}': {e}")

        logger.info(f"Cron service started with {len(self._scheduled)} jobs")

    def stop(self) -> None:
        if not self._running:
            return

        for name in list(self._scheduled):
            self._unschedule(name)
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Cron service stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ==========================================================================
    # Jobs
    # ==========================================================================

    def add_job(
        self,
        name: str,
        schedule: CronSchedule,
        message: str,
        deliver: bool = False,
        channel: str | None = None,
        chat_id: str | None = None
    ) -> CronJob:
        """
        Persist a job and schedule it.

        A job with the same name is replaced and its old schedule cancelled.

        Args:
            channel: Channel that receives delivered answers; "cron" if omitted
            chat_id: Conversation on that channel

        Raises:
            ValueError: If the name is empty or the schedule is unsupported
        """
        if not name:
            raise ValueError("Job name must not be empty")
        schedule.period_ms()

        job = CronJob(
            name=name,
            schedule=schedule,
            message=message,
            deliver=deliver,
            channel=channel or CRON_CHANNEL,
            chat_id=chat_id or "",
        )

        self._unschedule(name)
        self._jobs[name] = job
        self._save()

        if self._running:
            self._schedule(job)

        logger.info(f"Added job '{name}' ({schedule.describe()})")
        return job

    def remove_job(self, name: str) -> bool:
        """
        Cancel and delete a job.

        Returns:
            True if a job with that name existed
        """
        self._unschedule(name)
        if self._jobs.pop(name, None) is None:
            return False

        self._save()
        logger.info(f"Removed job '{name}'")
        return True

    def get_job(self, name: str) -> CronJob | None:
        return self._jobs.get(name)

    def get_jobs(self) -> list[CronJob]:
        return list(self._jobs.values())

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    @staticmethod
    def _scheduler_id(name: str) -> str:
        return f"cron:{name}"

    def _schedule(self, job: CronJob) -> None:
        period_ms = job.schedule.period_ms()
        self.scheduler.add_job(
            self._run_job,
            trigger=IntervalTrigger(seconds=period_ms / 1000),
            args=[job.name],
            id=self._scheduler_id(job.name),
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduled.add(job.name)

    def _unschedule(self, name: str) -> None:
        if name not in self._scheduled:
            return
        self._scheduled.discard(name)
        scheduler_id = self._scheduler_id(name)
        if self.scheduler.get_job(scheduler_id) is not None:
            self.scheduler.remove_job(scheduler_id)

    async def _run_job(self, name: str) -> ExecutedJob | None:
        """Fire a job. Failures are logged; the job stays scheduled."""
        job = self._jobs.get(name)
        if job is None:
            return None

        self._executions += 1
        started = time.monotonic()
        try:
            executed = await self.executor(job)
        except Exception as e:
            self._failures += 1
            logger.error(f"Cron job '{name}' failed", e)
            return None

        job.last_run_at = _now_ms()
        self._save()

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Cron job executed: {name} ({duration_ms}ms)")
        return executed

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def _load(self) -> None:
        """Load the job list from disk. Invalid entries are logged and skipped."""
        if not self.store_path.exists():
            return

        try:
            content = self.store_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read cron store {self.store_path}", e)
            return

        if not content.strip():
            return

        try:
            records = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Cron store {self.store_path} is not valid JSON", e)
            return

        if not isinstance(records, list):
            logger.error(f"Cron store {self.store_path} does not hold a job list")
            return

        for record in records:
            try:
                job = CronJob.from_dict(record)
                job.schedule.period_ms()
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid stored job {record!r}: {e}")
                continue
            self._jobs[job.name] = job

        logger.info(f"Loaded {len(self._jobs)} cron jobs")

    def _save(self) -> None:
        try:
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            self.store_path.write_text(
                json.dumps([job.to_dict() for job in self._jobs.values()], indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error(f"Failed to save cron store {self.store_path}", e)

    # ==========================================================================
    # Statistics
    # ==========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_jobs": len(self._jobs),
            "scheduled_jobs": len(self._scheduled),
            "executions": self._executions,
            "failures": self._failures,
            "running": self._running,
            "store_path": str(self.store_path),
        }
