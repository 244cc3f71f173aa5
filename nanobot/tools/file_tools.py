"""
File Tools
==========

Tools for reading and changing files in the agent's workspace.

These tools allow the agent to:
- Read text files (up to 1 MB)
- Create or overwrite files
- Replace text inside a file
- List directory contents

Path Rules:
- Relative paths resolve against the workspace (or the process working
  directory when no workspace is configured)
- "~/" expands to the user's home directory
- Absolute paths are used as given

The executors are plain functions; the registry runs them in a worker thread.
"""

from pathlib import Path
from typing import Any

from nanobot.exceptions import ToolExecutionError
from nanobot.tools import ToolParameter, ToolRegistry, require_arg
from nanobot.utils.logger import Logger

logger = Logger("FileTools")

MAX_FILE_SIZE = 1024 * 1024


def resolve_path(raw: str, workspace: Path | None) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute():
        return path
    return (workspace or Path.cwd()) / path


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


# ==============================================================================
# Tool: Read File
# ==============================================================================

def _read_file(args: dict[str, Any], workspace: Path | None) -> str:
    path = resolve_path(require_arg(args, "path"), workspace)

    if not path.exists():
        raise ToolExecutionError(f"File not found: {path}")
    if not path.is_file():
        raise ToolExecutionError(f"Not a file: {path}")

    size = path.stat().st_size
    if size > MAX_FILE_SIZE:
        raise ToolExecutionError(f"File too large: {size} bytes (max: {MAX_FILE_SIZE})")

    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ToolExecutionError(f"Failed to read file: {e}") from e

    return f"File: {path}\n\n{content}"


# ==============================================================================
# Tool: Write File
# ==============================================================================

def _write_file(args: dict[str, Any], workspace: Path | None) -> str:
    path = resolve_path(require_arg(args, "path"), workspace)
    content = args.get("content")
    if content is None:
        raise ToolExecutionError("content is required")
    content = str(content)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ToolExecutionError(f"Failed to write file: {e}") from e

    logger.debug(f"Wrote {len(content)} chars to {path}")
    return f"Successfully wrote {len(content)} bytes to {path}"


# ==============================================================================
# Tool: Edit File
# ==============================================================================

def _edit_file(args: dict[str, Any], workspace: Path | None) -> str:
    """Replace every occurrence of old_text with new_text."""
    path = resolve_path(require_arg(args, "path"), workspace)
    old_text = require_arg(args, "old_text")
    new_text = args.get("new_text")
    if new_text is None:
        raise ToolExecutionError("new_text is required")

    if not path.is_file():
        raise ToolExecutionError(f"File not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        if old_text not in content:
            raise ToolExecutionError(f"Text not found in file: {old_text}")
        path.write_text(content.replace(old_text, str(new_text)), encoding="utf-8")
    except OSError as e:
        raise ToolExecutionError(f"Failed to edit file: {e}") from e

    return f"Successfully edited {path}"


# ==============================================================================
# Tool: List Directory
# ==============================================================================

def _list_dir(args: dict[str, Any], workspace: Path | None) -> str:
    path = resolve_path(args.get("path") or ".", workspace)

    if not path.exists():
        raise ToolExecutionError(f"Directory not found: {path}")
    if not path.is_dir():
        raise ToolExecutionError(f"Not a directory: {path}")

    # Directories first, then files, each alphabetically
    entries = sorted(path.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))

    lines = []
    for entry in entries:
        if entry.is_dir():
            lines.append(f"📁 {entry.name}")
            continue
        try:
            lines.append(f"📄 {entry.name} ({_format_size(entry.stat().st_size)})")
        except OSError:
            lines.append(f"📄 {entry.name}")

    return "\n".join(lines) if lines else f"{path} is empty"


# ==============================================================================
# Registration
# ==============================================================================

def register_file_tools(registry: ToolRegistry) -> None:
    """Register read_file, write_file, edit_file and list_dir."""
    registry.register(
        "read_file",
        "Read the contents of a text file (max 1 MB).",
        {"path": ToolParameter("string", "File path, relative to the workspace", required=True)},
        True,
        _read_file,
    )
    registry.register(
        "write_file",
        "Create or overwrite a file with the given content. Parent directories are created.",
        {
            "path": ToolParameter("string", "File path, relative to the workspace", required=True),
            "content": ToolParameter("string", "Full file content", required=True),
        },
        True,
        _write_file,
    )
    registry.register(
        "edit_file",
        "Replace text in an existing file. Every occurrence of old_text is replaced.",
        {
            "path": ToolParameter("string", "File path, relative to the workspace", required=True),
            "old_text": ToolParameter("string", "Exact text to replace", required=True),
            "new_text": ToolParameter("string", "Replacement text", required=True),
        },
        True,
        _edit_file,
    )
    registry.register(
        "list_dir",
        "List the files and directories at a path.",
        {"path": ToolParameter("string", "Directory path, defaults to the workspace root")},
        True,
        _list_dir,
    )
    logger.info("Registered file tools")
