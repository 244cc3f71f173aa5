"""
Runtime
=======

Owns and wires every nanobot component. Nothing in nanobot is a module-level
global; the runtime builds one instance of each piece and passes them along
explicitly.

Components:
    MessageBus ──► AgentLoop ──► LLMProvider
        ▲              │
        │              ├──► ToolRegistry (file, shell, web, subagent, cron tools)
    Channels           ├──► ContextManager
                       ├──► EventBus / ThinkingTracker
                       └──► SubagentManager

    AsyncIOScheduler ──► CronService jobs
                    └──► maintenance sweeps (sessions, event log,
                         subagents, thoughts)

Example:
    runtime = build_runtime(get_config())
    await runtime.start()
    answer = await runtime.agent.process("cli:local", "hello")
    await runtime.stop()
"""

import time
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nanobot.agent import AgentLoop, SubagentManager, ThinkingTracker
from nanobot.bus import EventBus, EventType, MessageBus
from nanobot.bus.events import Event
from nanobot.channels.base import Channel
from nanobot.cron import CRON_CHANNEL, CronJob, CronService, ExecutedJob
from nanobot.memory import ContextManager
from nanobot.providers import LLMProvider, OpenAIProvider
from nanobot.tools import ToolRegistry
from nanobot.tools.agent_tools import register_agent_tools
from nanobot.tools.file_tools import register_file_tools
from nanobot.tools.shell_tools import register_shell_tools
from nanobot.tools.web_tools import register_web_tools
from nanobot.utils.config import Config
from nanobot.utils.logger import Logger

logger = Logger("Runtime")


class Runtime:
    """Holds the running components and drives their lifecycle."""

    def __init__(
        self,
        config: Config,
        bus: MessageBus,
        events: EventBus,
        context: ContextManager,
        tools: ToolRegistry,
        provider: LLMProvider,
        thinking: ThinkingTracker,
        agent: AgentLoop,
        subagents: SubagentManager,
        scheduler: AsyncIOScheduler
    ):
        self.config = config
        self.bus = bus
        self.events = events
        self.context = context
        self.tools = tools
        self.provider = provider
        self.thinking = thinking
        self.agent = agent
        self.subagents = subagents
        self.scheduler = scheduler
        self.cron = CronService(config.cron.store_path, self.execute_cron_job, scheduler)
        self.channels: list[Channel] = []
        self._started_at: float | None = None

    def add_channel(self, channel: Channel) -> None:
        self.channels.append(channel)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Start every component. Must be awaited inside the running loop."""
        if self._started_at is not None:
            return

        logger.info("Starting nanobot runtime...")
        self.bus.start()
        self.events.start()

        if not self.scheduler.running:
            self.scheduler.start()
        self._schedule_maintenance()

        self.agent.start()
        self.cron.start()

        for channel in self.channels:
            await channel.start()

        self._started_at = time.time()
        self.events.publish(Event(EventType.BOT_STARTED, "runtime", {"channels": self.channel_names}))
        logger.info(f"Runtime started (channels: {', '.join(self.channel_names) or 'none'})")

    async def stop(self) -> None:
        """
        Stop accepting new work and release resources.

        Work already in flight (handlers, subagents) is left to finish.
        """
        if self._started_at is None:
            return

        logger.info("Shutting down...")
        self.events.publish(Event(EventType.BOT_STOPPED, "runtime"))

        for channel in reversed(self.channels):
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Failed to stop channel '{channel.name}'", e)

        self.cron.stop()
        self.agent.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        await self.bus.stop()
        await self.context.stop()
        self.events.stop()
        await self.provider.close()

        self._started_at = None
        logger.info("Shutdown complete")

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def channel_names(self) -> list[str]:
        return [c.name for c in self.channels]

    # ==========================================================================
    # Cron
    # ==========================================================================

    async def execute_cron_job(self, job: CronJob) -> ExecutedJob:
        """Run a job's message through the agent and optionally deliver the answer."""
        started = time.monotonic()
        answer = await self.agent.process(f"cron:{job.id}", job.message)

        if job.deliver:
            self.bus.publish_outbound(
                job.channel or CRON_CHANNEL,
                sender_id="cron",
                chat_id=job.chat_id or job.name,
                content=answer,
                metadata={"job_id": job.id, "job_name": job.name},
            )

        return ExecutedJob(job.id, job.message, answer, int((time.monotonic() - started) * 1000))

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def _schedule_maintenance(self) -> None:
        config = self.config
        jobs = (
            ("session-sweep", self._sweep_sessions, config.context.sweep_interval),
            ("event-log-cleanup", self._sweep_events, config.bus.cleanup_interval),
            ("subagent-cleanup", self._sweep_subagents, config.bus.cleanup_interval),
            ("thought-cleanup", self._sweep_thoughts, config.bus.cleanup_interval),
        )
        for name, func, interval in jobs:
            self.scheduler.add_job(
                func,
                trigger=IntervalTrigger(seconds=interval.total_seconds()),
                id=f"maintenance:{name}",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )

    async def _sweep_sessions(self) -> None:
        removed = self.context.cleanup_old_sessions(self.config.context.session_max_age)
        if removed:
            logger.info(f"Removed {removed} idle sessions")

    async def _sweep_events(self) -> None:
        self.events.cleanup_old_events(self.config.bus.event_max_age)

    async def _sweep_subagents(self) -> None:
        self.subagents.cleanup(self.config.subagents.max_age)

    async def _sweep_thoughts(self) -> None:
        self.thinking.cleanup(self.config.subagents.max_age)

    # ==========================================================================
    # Statistics
    # ==========================================================================

    def get_stats(self) -> dict[str, Any]:
        uptime = time.time() - self._started_at if self._started_at else 0
        return {
            "running": self.is_running,
            "uptime_seconds": int(uptime),
            "provider": self.provider.name,
            "channels": [c.get_stats() for c in self.channels],
            "agent": self.agent.get_stats(),
            "bus": self.bus.get_stats(),
            "events": self.events.get_stats(),
            "context": self.context.get_stats(),
            "tools": self.tools.get_stats(),
            "subagents": self.subagents.get_stats(),
            "thinking": self.thinking.get_stats(),
            "cron": self.cron.get_stats(),
        }


def build_runtime(config: Config, provider: LLMProvider | None = None) -> Runtime:
    """
    Assemble a runtime from configuration.

    Args:
        config: Resolved configuration
        provider: LLM provider; an OpenAI-compatible one is built from config
            when omitted

    Returns:
        A runtime that has not been started yet
    """
    if provider is None:
        if not config.openai.api_key:
            raise ValueError("OPENAI_API_KEY is not set")
        provider = OpenAIProvider(
            api_key=config.openai.api_key,
            base_url=config.openai.base_url,
            name=config.openai.provider_name,
        )

    workspace = config.agent.workspace
    workspace.mkdir(parents=True, exist_ok=True)

    bus = MessageBus()
    events = EventBus(max_log_size=config.bus.event_log_size)
    context = ContextManager(
        max_messages_per_session=config.context.max_messages_per_session,
        max_tokens_per_session=config.context.max_tokens_per_session,
    )
    tools = ToolRegistry()
    thinking = ThinkingTracker(max_steps_per_thought=config.subagents.max_steps_per_thought)

    agent = AgentLoop(
        bus=bus,
        provider=provider,
        tools=tools,
        context=context,
        model=config.agent.model,
        max_iterations=config.agent.max_iterations,
        system_prompt=config.agent.system_prompt,
        workspace=workspace,
        events=events,
        thinking=thinking,
        serialize_sessions=config.agent.serialize_sessions,
    )
    subagents = SubagentManager(agent.run_task, workspace)

    runtime = Runtime(
        config=config,
        bus=bus,
        events=events,
        context=context,
        tools=tools,
        provider=provider,
        thinking=thinking,
        agent=agent,
        subagents=subagents,
        scheduler=AsyncIOScheduler(),
    )

    register_file_tools(tools)
    register_shell_tools(tools)
    register_web_tools(tools, config.web.search_api_key, config.web.search_api_base)
    register_agent_tools(tools, subagents, runtime.cron)

    if config.slack.enabled:
        from nanobot.channels.slack import SlackChannel
        runtime.add_channel(SlackChannel(bus, config.slack.bot_token, config.slack.app_token))

    logger.info(f"Runtime built with {len(tools)} tools")
    return runtime
