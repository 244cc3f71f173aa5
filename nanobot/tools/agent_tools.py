"""
Agent Tools
===========

Tools that let the model delegate work and schedule itself.

These tools allow the agent to:
- Spawn background subagents and check on them
- Add, list and remove recurring cron jobs

The executors are coroutines because subagents and cron jobs are scheduled on
the running event loop.
"""

from pathlib import Path
from typing import Any

from nanobot.agent.subagent import SubagentManager
from nanobot.cron.service import CronSchedule, CronService
from nanobot.exceptions import ToolExecutionError
from nanobot.tools import ToolParameter, ToolRegistry, int_arg, require_arg
from nanobot.utils.logger import Logger

logger = Logger("AgentTools")


def register_subagent_tools(registry: ToolRegistry, subagents: SubagentManager) -> None:
    """Register spawn_subagent and subagent_status."""

    async def spawn_subagent(args: dict[str, Any], workspace: Path | None) -> dict[str, str]:
        task = require_arg(args, "task")
        subagent_id = subagents.create_subagent(
            task,
            system_prompt=args.get("system_prompt"),
            model=args.get("model"),
        )
        return {"subagent_id": subagent_id, "status": "pending"}

    async def subagent_status(args: dict[str, Any], workspace: Path | None) -> dict[str, Any]:
        subagent_id = require_arg(args, "subagent_id")
        subagent = subagents.get_subagent(subagent_id)
        if subagent is None:
            raise ToolExecutionError(f"Unknown subagent: {subagent_id}")
        return subagent.to_dict()

    registry.register(
        "spawn_subagent",
        "Start a background subagent for an independent task. Returns its id immediately; "
        "use subagent_status to collect the result.",
        {
            "task": ToolParameter("string", "Complete instructions for the subagent", required=True),
            "system_prompt": ToolParameter("string", "Optional system prompt override"),
            "model": ToolParameter("string", "Optional model override"),
        },
        False,
        spawn_subagent,
    )
    registry.register(
        "subagent_status",
        "Get the status and, when finished, the result or error of a subagent.",
        {"subagent_id": ToolParameter("string", "Id returned by spawn_subagent", required=True)},
        False,
        subagent_status,
    )


def register_cron_tools(registry: ToolRegistry, cron: CronService) -> None:
    """Register cron_add, cron_list and cron_remove."""

    async def cron_add(args: dict[str, Any], workspace: Path | None) -> dict[str, Any]:
        name = require_arg(args, "name")
        message = require_arg(args, "message")
        every_seconds = int_arg(args, "every_seconds", 0)
        expression = args.get("cron")

        if expression:
            schedule = CronSchedule.from_cron(str(expression))
        elif every_seconds > 0:
            schedule = CronSchedule.every(every_seconds * 1000)
        else:
            raise ToolExecutionError("Either every_seconds or cron is required")

        try:
            job = cron.add_job(
                name,
                schedule,
                message,
                deliver=bool(args.get("deliver", False)),
                channel=args.get("channel"),
                chat_id=args.get("chat_id"),
            )
        except ValueError as e:
            raise ToolExecutionError(str(e)) from e

        return {"name": job.name, "id": job.id, "schedule": job.schedule.describe()}

    async def cron_list(args: dict[str, Any], workspace: Path | None) -> list[dict[str, Any]]:
        return [
            {
                "name": job.name,
                "schedule": job.schedule.describe(),
                "message": job.message,
                "deliver": job.deliver,
                "channel": job.channel,
                "enabled": job.enabled,
                "last_run_at": job.last_run_at,
            }
            for job in cron.get_jobs()
        ]

    async def cron_remove(args: dict[str, Any], workspace: Path | None) -> str:
        name = require_arg(args, "name")
        if not cron.remove_job(name):
            raise ToolExecutionError(f"No cron job named '{name}'")
        return f"Removed cron job '{name}'"

    registry.register(
        "cron_add",
        "Schedule a recurring message to yourself. Give every_seconds for a fixed period, "
        "or cron as a single minute field (e.g. '15' = every 15 minutes). "
        "A job with the same name is replaced.",
        {
            "name": ToolParameter("string", "Unique job name", required=True),
            "message": ToolParameter("string", "Message processed on every run", required=True),
            "every_seconds": ToolParameter("integer", "Period in seconds"),
            "cron": ToolParameter("string", "Minute interval, e.g. '30'"),
            "deliver": ToolParameter("boolean", "Send each answer to channel/chat_id"),
            "channel": ToolParameter("string", "Channel to deliver to, e.g. 'slack'; defaults to 'cron'"),
            "chat_id": ToolParameter("string", "Conversation on that channel, e.g. a Slack channel id"),
        },
        False,
        cron_add,
    )
    registry.register("cron_list", "List scheduled cron jobs.", {}, False, cron_list)
    registry.register(
        "cron_remove",
        "Remove a scheduled cron job by name.",
        {"name": ToolParameter("string", "Job name", required=True)},
        False,
        cron_remove,
    )


def register_agent_tools(
    registry: ToolRegistry,
    subagents: SubagentManager,
    cron: CronService | None = None
) -> None:
    register_subagent_tools(registry, subagents)
    if cron is not None:
        register_cron_tools(registry, cron)
    logger.info("Registered agent tools")
