"""
Tests for environment configuration.
"""

import logging

import pytest

from vanillaflow.config import AgentDefaultsConfig, get_config, parse_strategy, setup_logging
from vanillaflow.errors import ConfigError
from vanillaflow.models import StrategyMode


class TestParseStrategy:
    """Tests for parse_strategy."""

    def test_case_insensitive(self):
        """Strategy names ignore case and whitespace."""
        assert parse_strategy(" RACING ") is StrategyMode.RACING

    def test_unknown(self):
        """Unknown names raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_strategy("fastest")


class TestAgentDefaults:
    """Tests for AGENT_* environment defaults."""

    def test_defaults(self, monkeypatch):
        """Without variables the documented defaults apply."""
        for name in ("AGENT_MAX_STEPS", "AGENT_TIMEOUT", "AGENT_STRATEGY", "AGENT_ENABLE_RACING"):
            monkeypatch.delenv(name, raising=False)

        options = AgentDefaultsConfig().to_options()

        assert options.max_steps == 8
        assert options.timeout == 30.0
        assert options.strategy is StrategyMode.SMART
        assert options.enable_racing is True

    def test_from_environment(self, monkeypatch):
        """Variables override the defaults."""
        monkeypatch.setenv("AGENT_MAX_STEPS", "3")
        monkeypatch.setenv("AGENT_STRATEGY", "sequential")
        monkeypatch.setenv("AGENT_ENABLE_RACING", "false")
        monkeypatch.setenv("AGENT_KEEP_RECENT_TURNS", "6")

        options = get_config().agent.to_options()

        assert options.max_steps == 3
        assert options.strategy is StrategyMode.SEQUENTIAL
        assert options.enable_racing is False
        assert options.keep_recent_turns == 6

    def test_invalid_strategy(self, monkeypatch):
        """A bad AGENT_STRATEGY surfaces when options are built."""
        monkeypatch.setenv("AGENT_STRATEGY", "fastest")

        with pytest.raises(ConfigError):
            AgentDefaultsConfig().to_options()


class TestLangfuseFromEnv:
    """Tests for Langfuse environment settings."""

    def test_enabled_with_both_keys(self, monkeypatch):
        """Both keys enable tracing."""
        monkeypatch.setenv("LANGFUSE_PUBLIC_KEY", "pk-lf-test")
        monkeypatch.setenv("LANGFUSE_SECRET_KEY", "sk-lf-test")

        langfuse = get_config().langfuse

        assert langfuse.enabled is True
        assert langfuse.is_configured

    def test_disabled_without_secret(self, monkeypatch):
        """One key alone leaves tracing off."""
        monkeypatch.setenv("LANGFUSE_PUBLIC_KEY", "pk-lf-test")
        monkeypatch.delenv("LANGFUSE_SECRET_KEY", raising=False)

        assert get_config().langfuse.enabled is False


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_quiets_http_loggers(self):
        """HTTP client loggers are raised to WARNING."""
        setup_logging("DEBUG")

        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING
