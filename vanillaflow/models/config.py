"""
Configuration models for vanillaflow.

Defines dataclasses for run options and the unified YAML configuration file.
"""

from dataclasses import dataclass, field
from enum import Enum

from .provider import ProviderSettings

DEFAULT_MARKER = "TOOL_CALL:"


class StrategyMode(Enum):
    """How the gateway spreads a request over a provider tier."""

    SEQUENTIAL = "sequential"
    RACING = "racing"
    SMART = "smart"


@dataclass
class AgentOptions:
    """Per-run options supplied by the host application."""

    max_steps: int = 8
    timeout: float = 30.0  # Per provider call, seconds
    strategy: StrategyMode = StrategyMode.SMART
    enable_racing: bool = True

    # History bounding
    max_history_messages: int = 50
    max_history_tokens: int = 0  # 0 disables the token budget
    keep_recent_turns: int = 20
    preserve_system_messages: bool = True

    # Loop guards
    tool_retry_budget: int = 2
    loop_threshold: int = 3
    default_plan_steps: int = 4

    # Delay between sequential provider attempts
    retry_delay: float = 0.0
    retry_jitter: bool = False

    marker: str = DEFAULT_MARKER

    def validate(self) -> list[str]:
        """Return a list of validation problems (empty if valid)."""
        errors = []
        if self.max_steps <= 0:
            errors.append("max_steps must be positive")
        if self.timeout <= 0:
            errors.append("timeout must be positive")
        if self.keep_recent_turns <= 0:
            errors.append("keep_recent_turns must be positive")
        if self.max_history_messages < 0:
            errors.append("max_history_messages must not be negative")
        if self.max_history_tokens < 0:
            errors.append("max_history_tokens must not be negative")
        if self.tool_retry_budget < 0:
            errors.append("tool_retry_budget must not be negative")
        if self.loop_threshold < 2:
            errors.append("loop_threshold must be at least 2")
        if self.default_plan_steps <= 0:
            errors.append("default_plan_steps must be positive")
        if self.retry_delay < 0:
            errors.append("retry_delay must not be negative")
        if not self.marker.strip():
            errors.append("marker must not be blank")
        return errors


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """
    enabled: bool = False
    public_key: str = ""
    secret_key: str = ""
    host: str = "https://cloud.langfuse.com"
    debug: bool = False

    @property
    def is_configured(self) -> bool:
        """Check if Langfuse is configured (both keys present)."""
        return bool(self.public_key and self.secret_key)


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from config/config.yaml.
    """
    version: str = "1.0"
    agent: AgentOptions = field(default_factory=AgentOptions)
    providers: dict[str, ProviderSettings] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level
