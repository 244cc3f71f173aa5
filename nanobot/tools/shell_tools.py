"""
Shell Tools
===========

The bash tool: run a shell command inside the workspace.

Safety Limits:
- Commands matching a blocked pattern are refused before anything runs
- Commands are killed after 60 seconds
- Output (stdout and stderr combined) is capped at 100 KB
"""

import asyncio
from pathlib import Path
from typing import Any

from nanobot.exceptions import ToolExecutionError
from nanobot.tools import ToolParameter, ToolRegistry, require_arg
from nanobot.utils.logger import Logger

logger = Logger("ShellTools")

TIMEOUT_SECONDS = 60
MAX_OUTPUT = 100_000

BLOCKED_PATTERNS = (
    "rm -rf", "rm /", "mkfs", "dd if=", "cat /dev/urandom",
    "> /dev/", "$(",
    "&& rm", "; rm", "| rm",
    "chmod 777", "chmod -r",
    "wget", "curl", "nc ", "netcat",
    "ssh", "scp",
    "sudo", "su ",
    "passwd", "shadow",
)


def validate_command(command: str) -> None:
    """Raise ToolExecutionError if the command contains a blocked pattern."""
    lowered = command.lower()
    for pattern in BLOCKED_PATTERNS:
        if pattern in lowered:
            raise ToolExecutionError(f"Dangerous command pattern blocked: {pattern}")


async def run_command(
    command: str,
    cwd: Path | None = None,
    timeout: float = TIMEOUT_SECONDS
) -> str:
    validate_command(command)

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ToolExecutionError(f"Command timed out after {timeout:g}s") from None

    output = stdout.decode("utf-8", errors="replace")
    if len(output) > MAX_OUTPUT:
        output = output[:MAX_OUTPUT] + "\n\n[Output truncated - too large]"

    if process.returncode != 0 and not output:
        output = f"[Command failed with exit code {process.returncode}]"

    logger.debug(f"Command exited with {process.returncode}: {command[:60]}")
    return output


async def _bash(args: dict[str, Any], workspace: Path | None) -> str:
    return await run_command(require_arg(args, "command"), workspace)


def register_shell_tools(registry: ToolRegistry) -> None:
    registry.register(
        "bash",
        "Execute a shell command in the workspace and return its output. "
        f"Commands time out after {TIMEOUT_SECONDS}s; network and destructive commands are blocked.",
        {"command": ToolParameter("string", "The shell command to run", required=True)},
        True,
        _bash,
    )
    logger.info("Registered shell tools")
