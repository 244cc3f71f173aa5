"""
Slack Channel
=============

Connects nanobot to Slack through Slack Bolt in Socket Mode.

Socket Mode establishes a WebSocket connection to Slack, so the bot receives
events without a public URL.

Event Types:
- app_mention: someone mentions the bot in a channel; the answer goes to the
  thread
- message (channel_type "im"): direct messages to the bot

Bot messages, edits and other message subtypes are ignored.
"""

import re
from typing import Any

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp, AsyncSay
from slack_sdk.web.async_client import AsyncWebClient

from nanobot.bus.message_bus import MessageBus
from nanobot.channels.base import Channel

MENTION_RE = re.compile(r"<@[A-Z0-9]+>")


class SlackChannel(Channel):
    """
    Slack adapter.

    Example:
        slack = SlackChannel(bus, bot_token="xoxb-...", app_token="xapp-...")
        await slack.start()
    """

    def __init__(
        self,
        bus: MessageBus,
        bot_token: str,
        app_token: str,
        agent_channel: str = "agent"
    ):
        super().__init__(bus, "slack", agent_channel)
        self.bot_token = bot_token
        self.app_token = app_token
        self.app: AsyncApp | None = None
        self.handler: AsyncSocketModeHandler | None = None

    async def connect(self) -> None:
        self.app = AsyncApp(token=self.bot_token)
        self.app.event("app_mention")(self._handle_mention)
        self.app.event("message")(self._handle_message)

        self.handler = AsyncSocketModeHandler(app=self.app, app_token=self.app_token)
        await self.handler.connect_async()
        self.logger.info("Socket Mode connection established")

    async def disconnect(self) -> None:
        if self.handler is not None:
            await self.handler.close_async()
        self.handler = None
        self.app = None

    async def send(self, chat_id: str, content: str, metadata: dict[str, Any]) -> None:
        if self.app is None:
            raise RuntimeError("Slack channel is not connected")

        kwargs: dict[str, Any] = {"channel": chat_id, "text": content}
        if metadata.get("thread_ts"):
            kwargs["thread_ts"] = metadata["thread_ts"]
        client: AsyncWebClient = self.app.client
        await client.chat_postMessage(**kwargs)

    # ==========================================================================
    # Event Handlers
    # ==========================================================================

    async def _handle_mention(self, event: dict, say: AsyncSay) -> None:
        """Route an @mention to the agent; the reply lands in the thread."""
        text = MENTION_RE.sub("", event.get("text", "")).strip()
        thread_ts = event.get("thread_ts") or event.get("ts")

        if not text:
            await say(text="Hi! How can I help you?", thread_ts=thread_ts)
            return

        self.on_message(
            chat_id=event.get("channel", ""),
            sender_id=event.get("user", ""),
            text=text,
            metadata={"thread_ts": thread_ts, "channel_type": "channel"},
        )

    async def _handle_message(self, event: dict) -> None:
        # Only DMs; mentions in channels arrive as app_mention
        if event.get("channel_type") != "im":
            return
        if event.get("bot_id") or event.get("subtype"):
            return

        text = event.get("text", "")
        if not text:
            return

        self.on_message(
            chat_id=event.get("channel", ""),
            sender_id=event.get("user", ""),
            text=text,
            metadata={"channel_type": "im"},
        )
