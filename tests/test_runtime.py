import asyncio
from dataclasses import replace

import pytest

from conftest import FakeProvider, tool_call_response
from nanobot.bus import EventType
from nanobot.channels import Channel, CLIChannel
from nanobot.cron import CronSchedule
from nanobot.providers.base import LLMResponse
from nanobot.runtime import build_runtime
from nanobot.utils.config import OpenAIConfig, SlackConfig


def test_build_requires_an_api_key_without_a_provider(config):
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        build_runtime(config)


def test_build_registers_the_builtin_tools(config):
    runtime = build_runtime(config, provider=FakeProvider())

    assert set(runtime.tools.get_tool_names()) == {
        "read_file", "write_file", "edit_file", "list_dir",
        "bash",
        "web_fetch", "web_search",
        "spawn_subagent", "subagent_status",
        "cron_add", "cron_list", "cron_remove",
    }
    assert config.agent.workspace.is_dir()
    assert runtime.channels == []


def test_build_with_api_key_uses_openai_provider(config):
    config = replace(config, openai=OpenAIConfig(api_key="sk-test", provider_name="deepseek"))

    runtime = build_runtime(config)

    assert runtime.provider.name == "deepseek"


def test_slack_channel_is_added_when_tokens_are_set(config):
    config = replace(config, slack=SlackConfig(bot_token="xoxb-1", app_token="xapp-1"))

    runtime = build_runtime(config, provider=FakeProvider())

    assert runtime.channel_names == ["slack"]


@pytest.mark.asyncio
async def test_start_and_stop(config):
    provider = FakeProvider()
    runtime = build_runtime(config, provider=provider)

    await runtime.start()
    try:
        assert runtime.is_running
        assert runtime.scheduler.get_job("maintenance:session-sweep") is not None
        assert runtime.events.get_events_by_type(EventType.BOT_STARTED)
        stats = runtime.get_stats()
        assert stats["running"] is True
        assert stats["agent"]["listening"] is True
        assert stats["tools"]["tools"] == len(runtime.tools)
    finally:
        await runtime.stop()

    assert not runtime.is_running
    assert not runtime.bus.is_running
    assert provider.closed


@pytest.mark.asyncio
async def test_cli_conversation_through_the_runtime(config, tmp_path):
    provider = FakeProvider(
        tool_call_response("write_file", {"path": "note.txt", "content": "remember"}),
        LLMResponse(content="Saved it"),
    )
    runtime = build_runtime(config, provider=provider)
    output = []
    cli = CLIChannel(runtime.bus, runtime, writer=output.append)
    runtime.add_channel(cli)

    await runtime.start()
    try:
        answer = await asyncio.wait_for(cli.ask("save a note"), timeout=2)
    finally:
        await runtime.stop()

    assert answer == "Saved it"
    assert (config.agent.workspace / "note.txt").read_text() == "remember"
    assert runtime.context.has_session("cli:local")


@pytest.mark.asyncio
async def test_cron_job_answer_is_delivered(config):
    runtime = build_runtime(config, provider=FakeProvider(LLMResponse(content="Standup time")))
    output = []
    runtime.add_channel(CLIChannel(runtime.bus, runtime, writer=output.append))

    await runtime.start()
    try:
        job = runtime.cron.add_job("standup", CronSchedule.every(60_000), "Remind me", deliver=True)
        executed = await runtime.execute_cron_job(job)
        await asyncio.wait_for(runtime.bus.join(), timeout=1)
    finally:
        await runtime.stop()

    assert executed.result == "Standup time"
    assert executed.job_id == job.id
    assert output == ["\n[cron:standup] Standup time\n"]
    assert runtime.context.has_session(f"cron:{job.id}")


@pytest.mark.asyncio
async def test_cron_job_answer_is_delivered_to_the_job_channel(config):
    class ChatChannel(Channel):
        def __init__(self, bus):
            super().__init__(bus, "slack")
            self.sent = []

        async def connect(self):
            pass

        async def disconnect(self):
            pass

        async def send(self, chat_id, content, metadata):
            self.sent.append((chat_id, content, metadata))

    runtime = build_runtime(config, provider=FakeProvider(LLMResponse(content="Daily digest")))
    chat = ChatChannel(runtime.bus)
    cron_output = []
    runtime.add_channel(chat)
    runtime.add_channel(CLIChannel(runtime.bus, runtime, writer=cron_output.append))

    await runtime.start()
    try:
        await runtime.tools.execute("cron_add", {
            "name": "digest",
            "message": "Summarize the day",
            "every_seconds": 60,
            "deliver": True,
            "channel": "slack",
            "chat_id": "C1",
        })
        job = runtime.cron.get_job("digest")
        await runtime.execute_cron_job(job)
        await asyncio.wait_for(runtime.bus.join(), timeout=1)
    finally:
        await runtime.stop()

    assert chat.sent == [("C1", "Daily digest", {"job_id": job.id, "job_name": "digest"})]
    assert cron_output == []


@pytest.mark.asyncio
async def test_cron_delivery_to_the_cli_is_not_taken_as_a_reply(config):
    provider = FakeProvider(LLMResponse(content="Stretch"), LLMResponse(content="Hello"))
    runtime = build_runtime(config, provider=provider)
    output = []
    cli = CLIChannel(runtime.bus, runtime, writer=output.append)
    runtime.add_channel(cli)

    await runtime.start()
    try:
        job = runtime.cron.add_job(
            "stretch", CronSchedule.every(60_000), "Remind me", deliver=True, channel="cli", chat_id="local"
        )
        await runtime.execute_cron_job(job)
        await asyncio.wait_for(runtime.bus.join(), timeout=1)
        answer = await asyncio.wait_for(cli.ask("hi"), timeout=2)
    finally:
        await runtime.stop()

    assert answer == "Hello"
    assert output == ["\n[cron:stretch] Stretch\n", "\nnanobot: Hello\n"]

@pytest.mark.asyncio
async def test_cron_job_without_delivery_stays_silent(config):
    runtime = build_runtime(config, provider=FakeProvider(LLMResponse(content="quiet")))
    output = []
    runtime.add_channel(CLIChannel(runtime.bus, runtime, writer=output.append))

    await runtime.start()
    try:
        job = runtime.cron.add_job("quiet", CronSchedule.every(60_000), "Check")
        await runtime.execute_cron_job(job)
        await asyncio.wait_for(runtime.bus.join(), timeout=1)
    finally:
        await runtime.stop()

    assert output == []
