"""
Configuration Management
========================

All runtime settings come from environment variables (optionally loaded from
a .env file) and are exposed as frozen dataclasses.

Usage:
    from nanobot.utils.config import get_config

    config = get_config()
    print(config.agent.model)
    print(config.context.max_messages_per_session)

Nothing here is required at load time: the OpenAI key is only checked when a
provider is actually built, and Slack / web search stay disabled until their
tokens are present.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from nanobot.utils.logger import Logger

logger = Logger("Config")


DEFAULT_SYSTEM_PROMPT = """You are Nanobot, a helpful AI assistant.
You have access to various tools to help answer user questions.
Use tools when appropriate, but explain your thinking clearly.
Be concise and direct in your responses."""


def _optional(name: str, default: str) -> str:
    return os.getenv(name) or default


def _optional_int(name: str, default: int) -> int:
    """Read an integer variable, falling back to the default when invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _optional_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value).expanduser() if value else default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class AgentConfig:
    """Agent loop settings."""
    model: str
    max_iterations: int
    system_prompt: str
    workspace: Path
    serialize_sessions: bool = True


@dataclass(frozen=True)
class ContextConfig:
    """Bounds for per-session conversation memory."""
    max_messages_per_session: int = 50
    max_tokens_per_session: int = 8000
    session_max_age: timedelta = timedelta(hours=1)
    sweep_interval: timedelta = timedelta(minutes=10)


@dataclass(frozen=True)
class BusConfig:
    """EventBus log retention."""
    event_log_size: int = 1000
    event_max_age: timedelta = timedelta(hours=1)
    cleanup_interval: timedelta = timedelta(minutes=5)


@dataclass(frozen=True)
class SubagentConfig:
    """How long finished subagents and thoughts are kept for inspection."""
    max_age: timedelta = timedelta(hours=1)
    max_steps_per_thought: int = 50


@dataclass(frozen=True)
class CronConfig:
    store_path: Path


@dataclass(frozen=True)
class OpenAIConfig:
    """OpenAI-compatible endpoint (OpenAI, DeepSeek, Qwen, ...)."""
    api_key: str | None
    base_url: str | None = None
    provider_name: str = "openai"


@dataclass(frozen=True)
class SlackConfig:
    """Slack channel tokens; the channel is disabled unless both are set."""
    bot_token: str | None = None
    app_token: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.app_token)


@dataclass(frozen=True)
class WebConfig:
    search_api_key: str | None = None
    search_api_base: str = "https://api.search.brave.com"


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.agent.model
        config.cron.store_path
    """
    agent: AgentConfig
    context: ContextConfig
    bus: BusConfig
    subagents: SubagentConfig
    cron: CronConfig
    openai: OpenAIConfig
    slack: SlackConfig = field(default_factory=SlackConfig)
    web: WebConfig = field(default_factory=WebConfig)
    data_dir: Path = Path.home() / ".nanobot" / "data"


def load_config(load_env_file: bool = True) -> Config:
    """
    Build a Config from the environment.

    Args:
        load_env_file: Also read a .env file from the working directory tree

    Returns:
        Config: The resolved configuration
    """
    if load_env_file:
        load_dotenv()

    home = Path.home() / ".nanobot"
    data_dir = _optional_path("NANOBOT_DATA_DIR", home / "data")

    return Config(
        agent=AgentConfig(
            model=_optional("NANOBOT_MODEL", "gpt-4o-mini"),
            max_iterations=_optional_int("NANOBOT_MAX_ITERATIONS", 20),
            system_prompt=_optional("NANOBOT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            workspace=_optional_path("NANOBOT_WORKSPACE", home / "workspace"),
            serialize_sessions=_optional_bool("NANOBOT_SERIALIZE_SESSIONS", True),
        ),
        context=ContextConfig(
            max_messages_per_session=_optional_int("CONTEXT_MAX_MESSAGES", 50),
            max_tokens_per_session=_optional_int("CONTEXT_MAX_TOKENS", 8000),
            session_max_age=timedelta(minutes=_optional_int("SESSION_MAX_AGE_MINUTES", 60)),
            sweep_interval=timedelta(minutes=_optional_int("SESSION_SWEEP_MINUTES", 10)),
        ),
        bus=BusConfig(
            event_log_size=_optional_int("EVENT_LOG_SIZE", 1000),
            event_max_age=timedelta(minutes=_optional_int("EVENT_MAX_AGE_MINUTES", 60)),
            cleanup_interval=timedelta(minutes=_optional_int("EVENT_CLEANUP_MINUTES", 5)),
        ),
        subagents=SubagentConfig(
            max_age=timedelta(minutes=_optional_int("SUBAGENT_MAX_AGE_MINUTES", 60)),
            max_steps_per_thought=_optional_int("THINKING_MAX_STEPS", 50),
        ),
        cron=CronConfig(
            store_path=_optional_path("CRON_STORE_PATH", data_dir / "cron" / "jobs.json"),
        ),
        openai=OpenAIConfig(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("OPENAI_BASE_URL"),
            provider_name=_optional("LLM_PROVIDER_NAME", "openai"),
        ),
        slack=SlackConfig(
            bot_token=os.getenv("SLACK_BOT_TOKEN"),
            app_token=os.getenv("SLACK_APP_TOKEN"),
        ),
        web=WebConfig(
            search_api_key=os.getenv("BRAVE_API_KEY"),
        ),
        data_dir=data_dir,
    )


# ==============================================================================
# Singleton
# ==============================================================================
# Only the CLI entry point reads the shared instance; components receive the
# pieces they need explicitly.

_config_instance: Config | None = None


def get_config() -> Config:
    """Get the process-wide configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance
