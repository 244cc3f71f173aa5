"""
Tool Executor
=============

Runs the tool calls of one model turn through the registry and turns each
outcome into a ToolCallResult.

A failing tool never aborts the turn: its exception becomes a result with
success=False and the error text as content, so the model can see what went
wrong and recover on the next iteration.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nanobot.bus.event_bus import EventBus
from nanobot.providers.base import ToolCall
from nanobot.tools import ToolRegistry
from nanobot.utils.logger import Logger

logger = Logger("ToolExecutor")


@dataclass
class ToolCallResult:
    """
    Outcome of one tool call.

    Attributes:
        tool_call_id: The originating call id
        name: The tool name
        success: Whether the executor returned normally
        result: The executor's return value when successful
        error: The error text when not
    """
    tool_call_id: str
    name: str
    success: bool
    result: Any = None
    error: str | None = None

    @property
    def content(self) -> str:
        """Text shown to the model for this result."""
        if not self.success:
            return self.error or ""
        if isinstance(self.result, str):
            return self.result
        try:
            return json.dumps(self.result, default=str)
        except (TypeError, ValueError):
            # Non-string keys or circular structures
            return str(self.result)

    def to_context_metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "tool_call_id": self.tool_call_id,
        }

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {"tool": self.name, "success": self.success}
        if self.success:
            record["result"] = self.result
        else:
            record["error"] = self.error
        return record


class ToolExecutor:
    """
    Executes model-requested tool calls sequentially.

    Example:
        executor = ToolExecutor(registry, workspace=Path("~/work"))
        results = await executor.execute_all(response.tool_calls, "cli:1")
    """

    def __init__(
        self,
        registry: ToolRegistry,
        workspace: Path | None = None,
        events: EventBus | None = None
    ):
        self.registry = registry
        self.workspace = workspace
        self.events = events

    async def execute_one(self, tool_call: ToolCall, session_id: str = "") -> ToolCallResult:
        if self.events:
            self.events.publish_tool_called(tool_call.name, tool_call.arguments, session_id)

        try:
            result = await self.registry.execute(
                tool_call.name,
                tool_call.arguments,
                self.workspace,
                session_id,
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning(f"Tool {tool_call.name} failed: {error}")
            if self.events:
                self.events.publish_tool_failed(tool_call.name, error, session_id)
            return ToolCallResult(tool_call.id, tool_call.name, success=False, error=error)

        logger.debug(f"Tool {tool_call.name} succeeded")
        if self.events:
            self.events.publish_tool_completed(tool_call.name, result, session_id)
        return ToolCallResult(tool_call.id, tool_call.name, success=True, result=result)

    async def execute_all(
        self,
        tool_calls: list[ToolCall],
        session_id: str = ""
    ) -> list[ToolCallResult]:
        """
        Execute tool calls one after another, in request order.

        Sequential execution keeps side effects in the order the model asked
        for them.
        """
        results = []
        for tool_call in tool_calls:
            results.append(await self.execute_one(tool_call, session_id))
        return results
