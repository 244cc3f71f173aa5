"""
LLM Providers
=============

Provider adapters translate the runtime's message history into one LLM API
and back. Only the OpenAI-compatible adapter ships with nanobot.
"""

from nanobot.providers.base import LLMProvider, LLMResponse, ToolCall
from nanobot.providers.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "ToolCall", "OpenAIProvider"]
