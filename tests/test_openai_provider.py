import json
from types import SimpleNamespace

import pytest

from nanobot.exceptions import ProviderError
from nanobot.providers.openai_provider import OpenAIProvider, parse_response, to_openai_messages


def _completion(content=None, tool_calls=None, total_tokens=42):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeCompletions:
    def __init__(self, result):
        self.result = result
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _provider(result):
    completions = FakeCompletions(result)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIProvider(api_key="sk-test", client=client), completions


def test_history_is_rendered_with_system_prompt_and_tool_calls():
    history = [
        {"role": "user", "content": "list files"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "call_1", "name": "list_dir", "arguments": {"path": "."}}],
        },
        {"role": "tool", "content": "a.txt", "name": "list_dir", "success": True, "tool_call_id": "call_1"},
        {"role": "assistant", "content": "There is a.txt"},
    ]

    messages = to_openai_messages(history, "be brief")

    assert messages[0] == {"role": "system", "content": "be brief"}
    assert messages[2] == {
        "role": "assistant",
        "content": None,
        "tool_calls": [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "list_dir", "arguments": json.dumps({"path": "."})},
        }],
    }
    assert messages[3] == {"role": "tool", "tool_call_id": "call_1", "content": "a.txt"}
    assert messages[4] == {"role": "assistant", "content": "There is a.txt"}


def test_orphaned_tool_results_become_user_notes():
    # The assistant turn that issued call_1 was pruned away
    history = [
        {"role": "tool", "content": "a.txt", "name": "list_dir", "tool_call_id": "call_1"},
        {"role": "user", "content": "thanks"},
    ]

    messages = to_openai_messages(history, "")

    assert messages == [
        {"role": "user", "content": "[list_dir result]\na.txt"},
        {"role": "user", "content": "thanks"},
    ]


def test_parse_response_with_tool_calls():
    response = _completion(
        content=None,
        tool_calls=[
            _tool_call("call_1", "read_file", '{"path": "a.txt"}'),
            _tool_call("call_2", "bash", "{not json"),
        ],
    )

    parsed = parse_response(response)

    assert parsed.content == ""
    assert parsed.usage_tokens == 42
    assert [(tc.id, tc.name, tc.arguments) for tc in parsed.tool_calls] == [
        ("call_1", "read_file", {"path": "a.txt"}),
        ("call_2", "bash", {}),
    ]


@pytest.mark.asyncio
async def test_complete_with_tools_sends_tool_schema():
    provider, completions = _provider(_completion(content="hi"))
    tools = [{"type": "function", "function": {"name": "bash"}}]

    response = await provider.complete_with_tools("gpt-4o-mini", [{"role": "user", "content": "x"}], "", tools)

    assert response.content == "hi"
    [request] = completions.requests
    assert request["model"] == "gpt-4o-mini"
    assert request["tools"] == tools
    assert request["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_plain_completion_omits_tools():
    provider, completions = _provider(_completion(content="hi"))

    await provider.complete("gpt-4o-mini", [{"role": "user", "content": "x"}], "sys")

    assert "tools" not in completions.requests[0]


@pytest.mark.asyncio
async def test_request_failures_become_provider_errors():
    provider, _ = _provider(ConnectionError("network down"))

    with pytest.raises(ProviderError, match="network down"):
        await provider.complete("gpt-4o-mini", [], "")
