"""
Agent System
============

The agent is the brain of the bot. It:
1. Receives requests from the bus, the CLI or the cron service
2. Runs the tool-calling loop against the LLM
3. Delegates background work to subagents
4. Records a reasoning trace per request

This module provides:
- AgentLoop: The tool-calling state machine
- ToolExecutor: Runs the tool calls of one model turn
- SubagentManager: Background task tracking
- ThinkingTracker: Per-request reasoning traces
"""

from nanobot.agent.core import MAX_ITERATIONS_MESSAGE, AgentLoop
from nanobot.agent.subagent import Subagent, SubagentManager, SubagentStatus
from nanobot.agent.thinking import ThinkingTracker, ThoughtProcess, ThoughtStatus
from nanobot.agent.tools_executor import ToolCallResult, ToolExecutor

__all__ = [
    "AgentLoop",
    "MAX_ITERATIONS_MESSAGE",
    "Subagent",
    "SubagentManager",
    "SubagentStatus",
    "ThinkingTracker",
    "ThoughtProcess",
    "ThoughtStatus",
    "ToolCallResult",
    "ToolExecutor",
]
