"""
Environment configuration for vanillaflow.

Loads run defaults from environment variables (and a ``.env`` file) with
sensible defaults for local development. The YAML file handled by
``config_loader`` takes precedence when a host uses it.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .models import AgentOptions, LangfuseConfig, StrategyMode

load_dotenv()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def parse_strategy(value: str) -> StrategyMode:
    """Parse a strategy name such as ``smart`` or ``RACING``."""
    try:
        return StrategyMode(value.strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in StrategyMode)
        raise ConfigError(f"Unknown strategy '{value}' (expected one of: {choices})") from None


@dataclass
class AgentDefaultsConfig:
    """Run defaults taken from ``AGENT_*`` variables."""
    max_steps: int = field(default_factory=lambda: int(os.getenv("AGENT_MAX_STEPS", "8")))
    timeout: float = field(default_factory=lambda: float(os.getenv("AGENT_TIMEOUT", "30")))
    strategy: str = field(default_factory=lambda: os.getenv("AGENT_STRATEGY", "smart"))
    enable_racing: bool = field(default_factory=lambda: _env_bool("AGENT_ENABLE_RACING", "true"))
    max_history_messages: int = field(
        default_factory=lambda: int(os.getenv("AGENT_MAX_HISTORY_MESSAGES", "50"))
    )
    keep_recent_turns: int = field(
        default_factory=lambda: int(os.getenv("AGENT_KEEP_RECENT_TURNS", "20"))
    )

    def to_options(self) -> AgentOptions:
        return AgentOptions(
            max_steps=self.max_steps,
            timeout=self.timeout,
            strategy=parse_strategy(self.strategy),
            enable_racing=self.enable_racing,
            max_history_messages=self.max_history_messages,
            keep_recent_turns=self.keep_recent_turns,
        )


def langfuse_from_env() -> LangfuseConfig:
    """Langfuse settings; tracing auto-enables when both keys are set."""
    public_key = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    secret_key = os.getenv("LANGFUSE_SECRET_KEY", "")
    return LangfuseConfig(
        enabled=bool(public_key and secret_key),
        public_key=public_key,
        secret_key=secret_key,
        host=os.getenv("LANGFUSE_HOST", ""),
        debug=_env_bool("LANGFUSE_DEBUG", "false"),
    )


@dataclass
class Config:
    """Main configuration container."""
    agent: AgentDefaultsConfig
    langfuse: LangfuseConfig
    log_level: str = "INFO"


def get_config() -> Config:
    """Read the configuration from the current environment."""
    return Config(
        agent=AgentDefaultsConfig(),
        langfuse=langfuse_from_env(),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging to stderr."""
    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
    )
    # Quiet noisy HTTP client loggers
    for name in ("httpx", "httpcore", "urllib3", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
