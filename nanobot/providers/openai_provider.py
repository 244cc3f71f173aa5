"""
OpenAI Provider
===============

Adapter for OpenAI's chat completions API and compatible endpoints
(DeepSeek, Qwen and others accept the same protocol via base_url).

The adapter translates session history into OpenAI messages:
- assistant turns carrying "tool_calls" metadata become assistant messages
  with tool_calls
- tool results become "tool" messages when their call id is still present in
  the (possibly pruned) history, and plain user notes otherwise, since the
  API rejects tool messages without a matching call
"""

import json
from typing import Any

from openai import AsyncOpenAI

from nanobot.exceptions import ProviderError
from nanobot.providers.base import LLMProvider, LLMResponse, ToolCall
from nanobot.utils.logger import Logger

logger = Logger("OpenAI")


class OpenAIProvider(LLMProvider):
    """
    LLM provider backed by the OpenAI SDK.

    Example:
        provider = OpenAIProvider(api_key="sk-...")
        response = await provider.complete("gpt-4o-mini", history, system_prompt)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        name: str = "openai",
        client: AsyncOpenAI | None = None
    ):
        self.name = name
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        logger.info(f"Provider '{name}' ready" + (f" at {base_url}" if base_url else ""))

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system_prompt: str
    ) -> LLMResponse:
        return await self._request(model, messages, system_prompt, None)

    async def complete_with_tools(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None
    ) -> LLMResponse:
        return await self._request(model, messages, system_prompt, tools or None)

    async def _request(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": to_openai_messages(messages, system_prompt),
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"{self.name} request failed", e)
            raise ProviderError(f"{self.name} request failed: {e}") from e

        return parse_response(response)

    async def close(self) -> None:
        await self.client.close()


def to_openai_messages(
    history: list[dict[str, Any]],
    system_prompt: str
) -> list[dict[str, Any]]:
    """Render session history as an OpenAI messages list."""
    result: list[dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    open_calls: set[str] = set()

    for message in history:
        role = message.get("role")
        content = message.get("content") or ""

        if role == "assistant" and message.get("tool_calls"):
            calls = message["tool_calls"]
            open_calls = {c["id"] for c in calls}
            result.append({
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": c["id"],
                        "type": "function",
                        "function": {
                            "name": c["name"],
                            "arguments": json.dumps(c.get("arguments") or {}),
                        },
                    }
                    for c in calls
                ],
            })
        elif role == "tool":
            call_id = message.get("tool_call_id")
            if call_id and call_id in open_calls:
                result.append({"role": "tool", "tool_call_id": call_id, "content": content})
            else:
                name = message.get("name", "tool")
                result.append({"role": "user", "content": f"[{name} result]\n{content}"})
        else:
            open_calls = set()
            result.append({"role": role, "content": content})

    return result


def parse_response(response: Any) -> LLMResponse:
    """
    Extract content, tool calls and usage from a chat completion.

    Tool arguments that are not valid JSON are passed on as an empty dict so
    the tool reports the missing arguments itself.
    """
    message = response.choices[0].message
    tool_calls: list[ToolCall] = []

    for tc in message.tool_calls or []:
        try:
            arguments = json.loads(tc.function.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse arguments for {tc.function.name}: {e}")
            arguments = {}

        tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

    usage = getattr(response, "usage", None)
    return LLMResponse(
        content=message.content or "",
        tool_calls=tool_calls,
        usage_tokens=getattr(usage, "total_tokens", 0) or 0,
    )
