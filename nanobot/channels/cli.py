"""
CLI Channel
===========

Interactive terminal chat. Lines typed at the prompt go to the agent through
the "direct" bus channel; answers come back as outbound messages on "cli".

Lines starting with "/" are local commands and never reach the agent:

    /help      Show commands
    /stats     Runtime statistics
    /sessions  Active sessions
    /tools     Registered tools
    /cron      Scheduled jobs
    /reset     Clear this conversation
    /exit      Quit
"""

import asyncio
import json
from typing import TYPE_CHECKING, Any, Callable

from nanobot.bus.events import Message
from nanobot.bus.message_bus import MessageBus
from nanobot.channels.base import Channel
from nanobot.cron.service import CRON_CHANNEL

if TYPE_CHECKING:
    from nanobot.runtime import Runtime

CHAT_ID = "local"

HELP_TEXT = """Commands:
  /help      Show this help
  /stats     Runtime statistics
  /sessions  Active sessions
  /tools     Registered tools
  /cron      Scheduled jobs
  /reset     Clear this conversation
  /exit      Quit"""


class CLIChannel(Channel):
    """
    Terminal adapter.

    Example:
        cli = CLIChannel(runtime.bus, runtime)
        runtime.add_channel(cli)
        await runtime.start()
        await cli.run()
    """

    def __init__(
        self,
        bus: MessageBus,
        runtime: "Runtime | None" = None,
        reader: Callable[[str], str] = input,
        writer: Callable[[str], None] = print
    ):
        super().__init__(bus, "cli", agent_channel="direct")
        self.runtime = runtime
        self.reader = reader
        self.writer = writer
        self._replies: asyncio.Queue[str] = asyncio.Queue()

    @property
    def session_key(self) -> str:
        return f"{self.name}:{CHAT_ID}"

    async def connect(self) -> None:
        self.bus.subscribe(CRON_CHANNEL, self._print_delivery)

    async def disconnect(self) -> None:
        self.bus.unsubscribe(CRON_CHANNEL, self._print_delivery)

    async def send(self, chat_id: str, content: str, metadata: dict[str, Any]) -> None:
        if "job_name" in metadata:
            # Cron delivery addressed to this channel, not a reply to ask()
            self.writer(f"\n[cron:{metadata['job_name']}] {content}\n")
            return
        self.writer(f"\nnanobot: {content}\n")
        self._replies.put_nowait(content)

    async def _print_delivery(self, message: Message) -> None:
        job = message.metadata.get("job_name", message.chat_id)
        self.writer(f"\n[cron:{job}] {message.content}\n")

    # ==========================================================================
    # Interactive Loop
    # ==========================================================================

    async def run(self) -> None:
        """Read lines until /exit or end of input."""
        self.writer("nanobot shell. Type /help for commands.\n")

        while True:
            try:
                line = await asyncio.to_thread(self.reader, "You: ")
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue

            if line.startswith("/"):
                if not self.handle_command(line):
                    break
                continue

            await self.ask(line)

        self.writer("Bye!")

    async def ask(self, text: str) -> str:
        """Send a line to the agent and wait for the answer."""
        self.on_message(CHAT_ID, "user", text)
        return await self._replies.get()

    def handle_command(self, line: str) -> bool:
        """
        Run a slash command.

        Returns:
            False when the shell should exit
        """
        command = line.split()[0].lower()

        if command in ("/exit", "/quit"):
            return False
        if command == "/help":
            self.writer(HELP_TEXT)
        elif self.runtime is None:
            self.writer(f"{command} is not available without a runtime")
        elif command == "/stats":
            self.writer(json.dumps(self.runtime.get_stats(), indent=2, default=str))
        elif command == "/sessions":
            keys = self.runtime.context.get_session_keys()
            self.writer("\n".join(keys) if keys else "No active sessions")
        elif command == "/tools":
            self.writer("\n".join(
                f"{tool.name}: {tool.description}" for tool in self.runtime.tools.get_all_tools()
            ))
        elif command == "/cron":
            jobs = self.runtime.cron.get_jobs()
            self.writer("\n".join(
                f"{job.name} ({job.schedule.describe()}): {job.message}" for job in jobs
            ) if jobs else "No cron jobs")
        elif command == "/reset":
            self.runtime.agent.clear_conversation(self.session_key)
            self.writer("Conversation cleared")
        else:
            self.writer(f"Unknown command: {command}. Type /help for commands.")
        return True
