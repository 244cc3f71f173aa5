"""
Agent Core
==========

The tool-calling loop at the centre of nanobot.

The loop is the "brain" of the bot. For every request it:
1. Appends the user message to the session's context
2. Sends the session history to the LLM
3. Executes any tool calls and appends their results
4. Repeats until the model answers without tools or the cap is hit

Agent Loop:
    User Message
         │
         ▼
    Append to Context
         │
         ▼
    LLM Request (with tools if any are registered)
         │
         ▼
    ┌─── Has Tool Calls? ───┐
    │                       │
    Yes                     No
    │                       │
    ▼                       ▼
    Execute Tools      Append Answer, Return
    │
    ▼
    Append Assistant Turn + Tool Results
    │
    └──────── Loop (at most max_iterations model calls)

process() always returns a string: the answer, an error description when the
LLM call fails, or a notice when the iteration cap is exhausted. Tool failures
are not terminal; the model sees the error text and may recover.
"""

import asyncio
import uuid
import weakref
from pathlib import Path

from nanobot.agent.thinking import ThinkingTracker
from nanobot.agent.tools_executor import ToolExecutor
from nanobot.bus.event_bus import EventBus
from nanobot.bus.events import Message, MessageType
from nanobot.bus.message_bus import MessageBus
from nanobot.exceptions import ResourceExhaustedError
from nanobot.memory import ContextManager
from nanobot.providers.base import LLMProvider, LLMResponse
from nanobot.tools import ToolRegistry
from nanobot.utils.logger import Logger

logger = Logger("Agent")

MAX_ITERATIONS_MESSAGE = "Max iterations reached without completion"

# Bus channels the loop listens on
AGENT_CHANNELS = ("agent", "direct")

# Message types the loop answers; outbound traffic on the same channels is not
# for us and answering it would feed our own replies back in.
_HANDLED_TYPES = (MessageType.INBOUND, MessageType.COMMAND, MessageType.SYSTEM)


class AgentLoop:
    """
    Processes user requests against an LLM with tool calling.

    Example:
        agent = AgentLoop(
            bus=bus,
            provider=OpenAIProvider(api_key="sk-..."),
            tools=registry,
            context=ContextManager(),
            model="gpt-4o-mini",
        )

        answer = await agent.process("cli:1", "List the files in my workspace")

        # Or serve requests published on the bus
        agent.start()
    """

    def __init__(
        self,
        bus: MessageBus,
        provider: LLMProvider,
        tools: ToolRegistry,
        context: ContextManager,
        model: str,
        max_iterations: int = 20,
        system_prompt: str = "",
        workspace: Path | None = None,
        events: EventBus | None = None,
        thinking: ThinkingTracker | None = None,
        serialize_sessions: bool = True
    ):
        """
        Initialize the agent loop.

        Args:
            bus: Message bus for request/response routing
            provider: LLM completion capability
            tools: Tool catalog offered to the model
            context: Per-session conversation memory
            model: Default model name
            max_iterations: Maximum model calls per request
            system_prompt: Fixed system prompt sent with every call
            workspace: Directory handed to workspace-bound tools
            events: Optional event bus for observability events
            thinking: Optional tracker recording one step per iteration
            serialize_sessions: Run same-session requests one at a time
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.bus = bus
        self.provider = provider
        self.tools = tools
        self.context = context
        self.model = model
        self.max_iterations = max_iterations
        self.system_prompt = system_prompt
        self.workspace = workspace
        self.events = events
        self.thinking = thinking
        self.serialize_sessions = serialize_sessions

        self.executor = ToolExecutor(tools, workspace, events)
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._subscribed = False

        self._requests = 0
        self._llm_calls = 0
        self._tool_calls = 0
        self._errors = 0
        self._max_iteration_hits = 0

        logger.info(f"Agent initialized with model: {model}")

    # ==========================================================================
    # Processing
    # ==========================================================================

    async def process(self, session_key: str, user_message: str) -> str:
        """
        Process a user message and return the final response.

        Args:
            session_key: Conversation identifier, e.g. "slack:C123"
            user_message: The user's message

        Returns:
            The answer, an error description or the max-iterations notice
        """
        if not self.serialize_sessions:
            return await self._run(session_key, user_message)

        lock = self._session_lock(session_key)
        async with lock:
            return await self._run(session_key, user_message)

    async def run_task(
        self,
        task: str,
        system_prompt: str | None = None,
        model: str | None = None
    ) -> str:
        """
        Run one isolated request in a throw-away session.

        Used as the subagent executor; the session is cleared afterwards.
        """
        session_key = f"subagent:{uuid.uuid4().hex}"
        try:
            return await self._run(session_key, task, system_prompt, model)
        finally:
            self.context.clear_session(session_key)

    def _session_lock(self, session_key: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_key)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_key] = lock
        return lock

    async def _run(
        self,
        session_key: str,
        user_message: str,
        system_prompt: str | None = None,
        model: str | None = None
    ) -> str:
        model = model or self.model
        system_prompt = self.system_prompt if system_prompt is None else system_prompt

        self._requests += 1
        logger.info(f"Processing message for {session_key}: {user_message[:50]}")
        self.context.add_message(session_key, "user", user_message)

        thought_id = self.thinking.start_thinking(user_message, model) if self.thinking else None

        for iteration in range(1, self.max_iterations + 1):
            self._think(thought_id, session_key, f"Iteration {iteration}: calling {model}")
            history = self.context.get_messages(session_key)

            try:
                response = await self._call_model(model, history, system_prompt)
            except Exception as e:
                self._errors += 1
                logger.error(f"LLM call failed for {session_key}", e)
                if self.events:
                    self.events.publish_error("agent", str(e), e)
                if thought_id:
                    self.thinking.fail_thinking(thought_id, str(e))
                return f"Error processing request: {e}"

            if not response.has_tool_calls:
                self.context.add_message(session_key, "assistant", response.content)
                if self.events:
                    self.events.publish_agent_response(session_key, response.content)
                if thought_id:
                    self.thinking.complete_thinking(thought_id, response.content[:200])
                logger.info(
                    f"Generated response for {session_key} "
                    f"({len(response.content)} chars, {iteration} iterations)"
                )
                return response.content

            names = ", ".join(tc.name for tc in response.tool_calls)
            self._think(thought_id, session_key, f"Calling tools: {names}")
            self._tool_calls += len(response.tool_calls)

            results = await self.executor.execute_all(response.tool_calls, session_key)

            self.context.add_message(
                session_key,
                "assistant",
                response.content,
                {"tool_calls": [tc.to_dict() for tc in response.tool_calls]},
            )
            for result in results:
                self.context.add_message(
                    session_key,
                    "tool",
                    result.content,
                    result.to_context_metadata(),
                )

        self._max_iteration_hits += 1
        logger.warning(f"Reached max iterations ({self.max_iterations}) for {session_key}")
        if thought_id:
            self.thinking.fail_thinking(thought_id, MAX_ITERATIONS_MESSAGE)
        return MAX_ITERATIONS_MESSAGE

    async def _call_model(
        self,
        model: str,
        history: list[dict],
        system_prompt: str
    ) -> LLMResponse:
        self._llm_calls += 1
        if len(self.tools):
            return await self.provider.complete_with_tools(
                model, history, system_prompt, self.tools.get_tools_for_llm()
            )
        return await self.provider.complete(model, history, system_prompt)

    def _think(self, thought_id: str | None, session_key: str, step: str) -> None:
        if self.events:
            self.events.publish_agent_thinking(session_key, step)
        if not thought_id:
            return
        try:
            self.thinking.add_step(thought_id, step)
        except ResourceExhaustedError as e:
            logger.debug(str(e))

    # ==========================================================================
    # Bus Integration
    # ==========================================================================

    def start(self) -> None:
        """Subscribe to the agent bus channels."""
        if self._subscribed:
            return
        for channel in AGENT_CHANNELS:
            self.bus.subscribe(channel, self._handle_bus_message)
        self._subscribed = True
        logger.info(f"Agent listening on: {', '.join(AGENT_CHANNELS)}")

    def stop(self) -> None:
        if not self._subscribed:
            return
        for channel in AGENT_CHANNELS:
            self.bus.unsubscribe(channel, self._handle_bus_message)
        self._subscribed = False
        logger.info("Agent stopped listening")

    async def _handle_bus_message(self, message: Message) -> None:
        if message.type not in _HANDLED_TYPES:
            return

        reply_channel = message.metadata.get("origin", message.channel)
        session_key = message.metadata.get("session_key", f"{reply_channel}:{message.chat_id}")
        if self.events:
            self.events.publish_message_received(
                reply_channel, message.chat_id, message.sender_id, message.content
            )

        try:
            answer = await self.process(session_key, message.content)
        except Exception as e:
            logger.error(f"Failed to handle bus message {message.id}", e)
            answer = f"Error: {e}"

        self.bus.publish_outbound(
            reply_channel,
            sender_id="agent",
            chat_id=message.chat_id,
            content=answer,
            metadata=dict(message.metadata),
        )
        if self.events:
            self.events.publish_message_sent(reply_channel, message.chat_id, answer)

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def clear_conversation(self, session_key: str) -> bool:
        """Forget a session's history."""
        cleared = self.context.clear_session(session_key)
        if cleared:
            logger.info(f"Cleared conversation for {session_key}")
        return cleared

    # ==========================================================================
    # Statistics
    # ==========================================================================

    def get_stats(self) -> dict:
        return {
            "model": self.model,
            "max_iterations": self.max_iterations,
            "requests": self._requests,
            "llm_calls": self._llm_calls,
            "tool_calls": self._tool_calls,
            "errors": self._errors,
            "max_iteration_hits": self._max_iteration_hits,
            "listening": self._subscribed,
        }
