"""
nanobot.exceptions - Error taxonomy for the orchestration runtime.

All runtime errors inherit from NanobotError so callers can catch broad or
specific failures. The agent loop never lets these escape `process`; they
surface to direct callers of the registry, subagent manager and tracker.
"""


class NanobotError(Exception):
    """Base exception for all runtime errors."""


# ---------------------------------------------------------------------------
# Unknown entities
# ---------------------------------------------------------------------------

class UnknownEntityError(NanobotError):
    """Raised when an id or name does not refer to a registered entity."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"Unknown {kind}: {key}")
        self.kind = kind
        self.key = key


class UnknownToolError(UnknownEntityError):
    def __init__(self, name: str):
        super().__init__("tool", name)


class UnknownSubagentError(UnknownEntityError):
    def __init__(self, subagent_id: str):
        super().__init__("subagent", subagent_id)


class UnknownThoughtError(UnknownEntityError):
    def __init__(self, thought_id: str):
        super().__init__("thought", thought_id)


# ---------------------------------------------------------------------------
# Lifecycle state
# ---------------------------------------------------------------------------

class InvalidStateError(NanobotError):
    """Raised when an entity is in the wrong lifecycle state for an operation."""


class SubagentCancelledError(InvalidStateError):
    """Raised when waiting on a subagent that was cancelled."""


class SubagentTimeoutError(InvalidStateError, TimeoutError):
    """Raised when a subagent does not finish within the wait timeout."""


class SubagentFailedError(NanobotError):
    """Raised when a subagent finished in the failed state."""

    def __init__(self, subagent_id: str, error: str | None):
        super().__init__(f"Subagent {subagent_id} failed: {error}")
        self.subagent_id = subagent_id
        self.error = error


# ---------------------------------------------------------------------------
# External failures and limits
# ---------------------------------------------------------------------------

class ProviderError(NanobotError):
    """Raised when an LLM provider or external API request fails."""


class ToolExecutionError(NanobotError):
    """Raised by a tool to report its own failure; passed through verbatim."""


class ResourceExhaustedError(NanobotError):
    """Raised when an iteration or step cap is reached."""
