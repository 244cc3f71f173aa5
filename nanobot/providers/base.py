"""
LLM Provider Interface
======================

The agent loop only depends on this contract:

    complete(model, messages, system_prompt) -> LLMResponse
    complete_with_tools(model, messages, system_prompt, tools) -> LLMResponse

`messages` is the session history as returned by ContextManager.get_messages:
dicts with "role" and "content" plus optional metadata keys ("tool_calls" on
assistant turns, "tool_call_id" / "name" / "success" on tool results).

Providers raise ProviderError on any request failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    Attributes:
        id: Provider-assigned call id, used to pair results with calls
        name: Tool name
        arguments: Parsed arguments
    """
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage_tokens: int = 0

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMProvider(ABC):
    """Stateless request/response translator for one LLM API."""

    name: str = "provider"

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system_prompt: str
    ) -> LLMResponse:
        """Complete a conversation without tools."""

    @abstractmethod
    async def complete_with_tools(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None
    ) -> LLMResponse:
        """Complete a conversation with function-calling tools available."""

    def supports_model(self, model: str) -> bool:
        return True

    async def close(self) -> None:
        """Release network resources, if any."""
