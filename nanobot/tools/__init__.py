"""
Tools System
============

A capability catalog plus dispatcher. The model asks for a tool by name with
JSON arguments; the registry finds the executor and runs it.

How Tools Work:
1. Tools are registered on a ToolRegistry owned by the runtime
2. get_tools_for_llm() renders the catalog as function-calling schemas
3. The agent loop calls execute(name, arguments, workspace, session_id)
4. The executor's result (or exception) goes back to the model

Executors take (arguments, workspace) and return a result or raise. Coroutine
executors are awaited; plain functions run in a worker thread so blocking
I/O does not stall the event loop. The registry adds no error wrapping: a
tool's exception reaches the caller unchanged.

Built-in tool sets live in the submodules and are registered explicitly:

    registry = ToolRegistry()
    register_file_tools(registry)
    register_shell_tools(registry)
"""

import asyncio
import inspect
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from nanobot.exceptions import ToolExecutionError, UnknownToolError
from nanobot.utils.logger import Logger

logger = Logger("Tools")

ToolExecutorFn = Callable[[dict[str, Any], Path | None], Any | Awaitable[Any]]


@dataclass(frozen=True)
class ToolParameter:
    """
    One named parameter of a tool.

    Attributes:
        type: JSON Schema type ("string", "integer", ...)
        description: Shown to the model
        required: Whether the model must supply it
    """
    type: str
    description: str = ""
    required: bool = False

    @classmethod
    def coerce(cls, value: "ToolParameter | Mapping[str, Any]") -> "ToolParameter":
        if isinstance(value, ToolParameter):
            return value
        return cls(
            type=value.get("type", "string"),
            description=value.get("description", ""),
            required=bool(value.get("required", False)),
        )

    def to_schema(self) -> dict[str, Any]:
        return {"type": self.type, "description": self.description}


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Declarative description of a registered tool.

    Attributes:
        name: Unique tool name
        description: What the tool does (shown to the model)
        parameters: Ordered mapping of parameter name -> ToolParameter
        requires_workspace: Whether the tool operates inside the workspace
    """
    name: str
    description: str
    parameters: dict[str, ToolParameter] = field(default_factory=dict)
    requires_workspace: bool = False

    @property
    def required(self) -> list[str]:
        return [name for name, p in self.parameters.items() if p.required]

    def to_llm_function(self) -> dict[str, Any]:
        """
        Convert to the OpenAI function-calling format.

        Returns:
            {"type": "function", "function": {name, description, parameters}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        name: param.to_schema() for name, param in self.parameters.items()
                    },
                    "required": self.required,
                },
            },
        }


@dataclass(frozen=True)
class _Registration:
    # Descriptor and executor travel together so a lookup never sees one
    # without the other
    descriptor: ToolDescriptor
    executor: ToolExecutorFn


class ToolRegistry:
    """
    Registry of tools keyed by name.

    Example:
        registry = ToolRegistry()

        def read_file(args, workspace):
            return (workspace / args["path"]).read_text()

        registry.register(
            "read_file",
            "Read contents of a file",
            {"path": ToolParameter("string", "Path to file", required=True)},
            requires_workspace=True,
            executor=read_file,
        )

        result = await registry.execute("read_file", {"path": "notes.md"}, workspace)
    """

    def __init__(self):
        self._tools: dict[str, _Registration] = {}
        self._lock = threading.Lock()
        self._executions = 0
        self._failures = 0

    def register(
        self,
        name: str,
        description: str,
        parameters: Mapping[str, ToolParameter | Mapping[str, Any]] | None,
        requires_workspace: bool,
        executor: ToolExecutorFn
    ) -> ToolDescriptor:
        """
        Register a tool, replacing any previous registration under the name.

        Returns:
            The stored descriptor
        """
        if not name:
            raise ValueError("Tool name must not be empty")
        if not callable(executor):
            raise TypeError(f"Executor for tool '{name}' is not callable")

        descriptor = ToolDescriptor(
            name=name,
            description=description,
            parameters={k: ToolParameter.coerce(v) for k, v in (parameters or {}).items()},
            requires_workspace=requires_workspace,
        )

        with self._lock:
            replaced = name in self._tools
            self._tools[name] = _Registration(descriptor, executor)

        logger.debug(f"{'Re-registered' if replaced else 'Registered'} tool: {name}")
        return descriptor

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._tools.pop(name, None) is not None

    def get_tool(self, name: str) -> ToolDescriptor | None:
        registration = self._tools.get(name)
        return registration.descriptor if registration else None

    def get_tool_names(self) -> list[str]:
        with self._lock:
            return list(self._tools)

    def get_all_tools(self) -> list[ToolDescriptor]:
        with self._lock:
            return [r.descriptor for r in self._tools.values()]

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get_tools_for_llm(self) -> list[dict[str, Any]]:
        """All tools in function-calling format, in registration order."""
        return [d.to_llm_function() for d in self.get_all_tools()]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        workspace: Path | str | None = None,
        session_id: str | None = None
    ) -> Any:
        """
        Execute a tool by name.

        Args:
            name: The tool name
            arguments: Arguments from the model
            workspace: Working directory passed to the executor
            session_id: Calling session, for logging

        Returns:
            Whatever the executor returns

        Raises:
            UnknownToolError: If no tool is registered under `name`
            Exception: Anything the executor raises, unchanged
        """
        registration = self._tools.get(name)
        if registration is None:
            raise UnknownToolError(name)

        args = dict(arguments or {})
        path = Path(workspace) if workspace is not None else None
        executor = registration.executor

        logger.info(f"Executing tool: {name}" + (f" ({session_id})" if session_id else ""))
        self._executions += 1
        try:
            if inspect.iscoroutinefunction(executor):
                return await executor(args, path)

            result = await asyncio.to_thread(executor, args, path)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception:
            self._failures += 1
            raise

    def get_stats(self) -> dict[str, Any]:
        return {
            "tools": len(self._tools),
            "executions": self._executions,
            "failures": self._failures,
        }


# ==============================================================================
# Argument helpers for tool executors
# ==============================================================================

def require_arg(args: dict[str, Any], key: str) -> str:
    """Fetch a required argument as a string or fail the tool call."""
    value = args.get(key)
    if value is None or value == "":
        raise ToolExecutionError(f"{key} is required")
    return str(value)


def int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"{key} must be an integer, got {value!r}") from None


__all__ = [
    "ToolDescriptor",
    "ToolParameter",
    "ToolRegistry",
    "ToolExecutorFn",
    "int_arg",
    "require_arg",
]
