import copy
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from nanobot.bus import MessageBus
from nanobot.memory import ContextManager
from nanobot.providers.base import LLMProvider, LLMResponse, ToolCall
from nanobot.tools import ToolRegistry
from nanobot.utils.config import (
    AgentConfig,
    BusConfig,
    Config,
    ContextConfig,
    CronConfig,
    OpenAIConfig,
    SubagentConfig,
)


class FakeProvider(LLMProvider):
    """
    Scripted LLM provider.

    Each call pops the next scripted item: an LLMResponse is returned, an
    exception is raised, and a callable is invoked with the history. When the
    script runs out the last item repeats.
    """

    name = "fake"

    def __init__(self, *script: LLMResponse | Exception | Callable[[list], LLMResponse]):
        self.script = list(script) or [LLMResponse(content="ok")]
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def _next(self, history: list[dict[str, Any]]) -> LLMResponse:
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(history)
        return item

    async def complete(self, model, messages, system_prompt):
        self.calls.append({
            "model": model,
            "messages": copy.deepcopy(messages),
            "system_prompt": system_prompt,
            "tools": None,
        })
        return self._next(messages)

    async def complete_with_tools(self, model, messages, system_prompt, tools=None):
        self.calls.append({
            "model": model,
            "messages": copy.deepcopy(messages),
            "system_prompt": system_prompt,
            "tools": tools,
        })
        return self._next(messages)

    async def close(self):
        self.closed = True


def tool_call_response(name: str, arguments: dict | None = None, call_id: str = "call_1", content: str = "") -> LLMResponse:
    return LLMResponse(content=content, tool_calls=[ToolCall(call_id, name, arguments or {})])


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def context() -> ContextManager:
    return ContextManager()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        agent=AgentConfig(
            model="test-model",
            max_iterations=5,
            system_prompt="You are a test bot.",
            workspace=tmp_path / "workspace",
        ),
        context=ContextConfig(),
        bus=BusConfig(),
        subagents=SubagentConfig(max_age=timedelta(minutes=5)),
        cron=CronConfig(store_path=tmp_path / "cron" / "jobs.json"),
        openai=OpenAIConfig(api_key=None),
        data_dir=tmp_path / "data",
    )
