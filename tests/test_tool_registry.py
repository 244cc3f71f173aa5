import json
import threading

import pytest

from nanobot.exceptions import ToolExecutionError, UnknownEntityError, UnknownToolError
from nanobot.tools import ToolParameter, ToolRegistry


def _register_echo(registry: ToolRegistry, executor=None):
    return registry.register(
        "echo",
        "Echo the text back",
        {
            "text": ToolParameter("string", "Text to echo", required=True),
            "times": {"type": "integer", "description": "Repeat count"},
        },
        False,
        executor or (lambda args, workspace: args["text"]),
    )


@pytest.mark.asyncio
async def test_unknown_tool_fails_with_unknown_entity(registry):
    with pytest.raises(UnknownToolError) as exc_info:
        await registry.execute("missing", {})

    assert isinstance(exc_info.value, UnknownEntityError)
    assert "missing" in str(exc_info.value)


@pytest.mark.asyncio
async def test_sync_executor_runs_in_worker_thread(registry):
    main_thread = threading.get_ident()
    _register_echo(registry, lambda args, workspace: threading.get_ident())

    worker_thread = await registry.execute("echo", {"text": "x"})

    assert worker_thread != main_thread


@pytest.mark.asyncio
async def test_coroutine_executor_is_awaited(registry, tmp_path):
    async def executor(args, workspace):
        return {"text": args["text"], "workspace": workspace}

    _register_echo(registry, executor)

    result = await registry.execute("echo", {"text": "hi"}, workspace=str(tmp_path))

    assert result == {"text": "hi", "workspace": tmp_path}


@pytest.mark.asyncio
async def test_reregister_replaces_executor_and_descriptor(registry):
    _register_echo(registry, lambda args, workspace: "old")
    registry.register("echo", "New description", {}, True, lambda args, workspace: "new")

    assert await registry.execute("echo", {}) == "new"
    descriptor = registry.get_tool("echo")
    assert descriptor.description == "New description"
    assert descriptor.parameters == {}
    assert descriptor.requires_workspace is True
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_executor_errors_propagate_unwrapped(registry):
    def executor(args, workspace):
        raise ToolExecutionError("disk full")

    _register_echo(registry, executor)

    with pytest.raises(ToolExecutionError, match="disk full"):
        await registry.execute("echo", {"text": "x"})
    assert registry.get_stats() == {"tools": 1, "executions": 1, "failures": 1}


def test_tools_for_llm_round_trip(registry):
    _register_echo(registry)
    registry.register(
        "list_dir",
        "List a directory",
        {"path": ToolParameter("string", "Directory")},
        True,
        lambda args, workspace: [],
    )

    parsed = json.loads(json.dumps(registry.get_tools_for_llm()))
    functions = {t["function"]["name"]: t["function"] for t in parsed}

    assert {t["type"] for t in parsed} == {"function"}
    assert set(functions) == set(registry.get_tool_names())
    assert functions["echo"]["description"] == "Echo the text back"
    assert functions["echo"]["parameters"]["required"] == ["text"]
    assert functions["echo"]["parameters"]["properties"]["times"] == {
        "type": "integer",
        "description": "Repeat count",
    }
    assert functions["list_dir"]["parameters"] == {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "Directory"}},
        "required": [],
    }


def test_unregister(registry):
    _register_echo(registry)

    assert registry.unregister("echo") is True
    assert registry.unregister("echo") is False
    assert not registry.has_tool("echo")


def test_register_validates_input(registry):
    with pytest.raises(ValueError):
        registry.register("", "no name", {}, False, lambda a, w: None)
    with pytest.raises(TypeError):
        registry.register("bad", "not callable", {}, False, "nope")
