from datetime import timedelta
from pathlib import Path

from click.testing import CliRunner

from nanobot import __version__
from nanobot.main import cli
from nanobot.utils.config import load_config
from nanobot.utils.logger import Logger, LogLevel


def test_defaults_without_environment(monkeypatch, tmp_path):
    for name in ("OPENAI_API_KEY", "SLACK_BOT_TOKEN", "SLACK_APP_TOKEN", "NANOBOT_MODEL", "BRAVE_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NANOBOT_DATA_DIR", str(tmp_path))

    config = load_config(load_env_file=False)

    assert config.agent.model == "gpt-4o-mini"
    assert config.agent.max_iterations == 20
    assert config.context.max_messages_per_session == 50
    assert config.openai.api_key is None
    assert not config.slack.enabled
    assert config.cron.store_path == Path(tmp_path) / "cron" / "jobs.json"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("NANOBOT_MODEL", "deepseek-chat")
    monkeypatch.setenv("NANOBOT_MAX_ITERATIONS", "7")
    monkeypatch.setenv("CONTEXT_MAX_TOKENS", "not-a-number")
    monkeypatch.setenv("SESSION_MAX_AGE_MINUTES", "5")
    monkeypatch.setenv("NANOBOT_SERIALIZE_SESSIONS", "false")
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-1")
    monkeypatch.setenv("SLACK_APP_TOKEN", "xapp-1")

    config = load_config(load_env_file=False)

    assert config.agent.model == "deepseek-chat"
    assert config.agent.max_iterations == 7
    assert config.agent.serialize_sessions is False
    assert config.context.max_tokens_per_session == 8000
    assert config.context.session_max_age == timedelta(minutes=5)
    assert config.slack.enabled


def test_logger_level_follows_environment(monkeypatch):
    logger = Logger("Test")

    monkeypatch.setenv("LOG_LEVEL", "error")
    assert not logger.is_enabled_for(LogLevel.WARNING)

    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert logger.child("Sub").is_enabled_for(LogLevel.DEBUG)
    assert Logger("Fixed", LogLevel.ERROR).child("Sub").min_level == LogLevel.ERROR


def test_version_command():
    result = CliRunner().invoke(cli, ["version"])

    assert result.exit_code == 0
    assert result.output.strip() == f"nanobot v{__version__}"
