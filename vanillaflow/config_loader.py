"""
Configuration loader for vanillaflow.

Loads the unified YAML configuration (agent options, providers, logging,
Langfuse) with support for environment variable interpolation.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import parse_strategy
from .errors import ConfigError
from .models import (
    AgentOptions,
    AppConfig,
    ConnectionType,
    LangfuseConfig,
    LoggingConfig,
    PoolName,
    ProviderCapabilities,
    ProviderConnection,
    ProviderDefaults,
    ProviderSettings,
    ProviderTier,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

# Singleton cache for app config
_app_config: Optional[AppConfig] = None


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax.
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _enum(enum_cls: type, value: Any, what: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Unknown {what} '{value}' (expected one of: {choices})") from None


# =============================================================================
# Section parsers
# =============================================================================


def _parse_agent_options(data: dict) -> AgentOptions:
    """Parse the ``agent`` section; absent keys keep AgentOptions defaults."""
    defaults = AgentOptions()
    try:
        return AgentOptions(
            max_steps=int(data.get("max_steps", defaults.max_steps)),
            timeout=float(data.get("timeout", defaults.timeout)),
            strategy=parse_strategy(str(data.get("strategy", defaults.strategy.value))),
            enable_racing=_as_bool(data.get("enable_racing", defaults.enable_racing)),
            max_history_messages=int(data.get("max_history_messages", defaults.max_history_messages)),
            max_history_tokens=int(data.get("max_history_tokens", defaults.max_history_tokens)),
            keep_recent_turns=int(data.get("keep_recent_turns", defaults.keep_recent_turns)),
            preserve_system_messages=_as_bool(
                data.get("preserve_system_messages", defaults.preserve_system_messages)
            ),
            tool_retry_budget=int(data.get("tool_retry_budget", defaults.tool_retry_budget)),
            loop_threshold=int(data.get("loop_threshold", defaults.loop_threshold)),
            default_plan_steps=int(data.get("default_plan_steps", defaults.default_plan_steps)),
            retry_delay=float(data.get("retry_delay", defaults.retry_delay)),
            retry_jitter=_as_bool(data.get("retry_jitter", defaults.retry_jitter)),
            marker=str(data.get("marker", defaults.marker)),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid agent configuration: {e}") from e


def _parse_connection(data: dict) -> ProviderConnection:
    """Parse connection configuration from dict."""
    return ProviderConnection(
        type=_enum(ConnectionType, data.get("type", "openai_compatible"), "connection type"),
        base_url=data.get("base_url", ""),
        model=data.get("model", ""),
        api_key=data.get("api_key") or None,
    )


def _parse_defaults(data: dict) -> ProviderDefaults:
    """Parse generation defaults from dict."""
    return ProviderDefaults(
        temperature=float(data.get("temperature", 0.7)),
        max_tokens=int(data.get("max_tokens", 2048)),
        timeout=float(data.get("timeout", 30)),
    )


def _parse_capabilities(data: dict) -> ProviderCapabilities:
    return ProviderCapabilities(
        native_tools=_as_bool(data.get("native_tools", False)),
        streaming=_as_bool(data.get("streaming", False)),
    )


def _parse_provider(provider_id: str, data: dict) -> ProviderSettings:
    """Parse a single provider entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Provider '{provider_id}' must be a mapping")
    return ProviderSettings(
        id=provider_id,
        connection=_parse_connection(data.get("connection", {})),
        tier=_enum(ProviderTier, data.get("tier", "paid"), "tier"),
        pool=_enum(PoolName, data.get("group", "primary"), "group"),
        capabilities=_parse_capabilities(data.get("capabilities", {})),
        defaults=_parse_defaults(data.get("defaults", {})),
    )


def _parse_providers(data: dict) -> dict[str, ProviderSettings]:
    providers = {}
    for provider_id, provider_data in data.items():
        try:
            providers[provider_id] = _parse_provider(provider_id, provider_data)
            logger.debug(f"Loaded provider: {provider_id}")
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to parse provider '{provider_id}': {e}")
            raise ConfigError(f"Invalid provider configuration for '{provider_id}': {e}") from e
    return providers


def _parse_logging_config(data: dict) -> LoggingConfig:
    return LoggingConfig(level=str(data.get("level", "INFO")).upper())


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    """Parse Langfuse configuration from dict."""
    return LangfuseConfig(
        enabled=_as_bool(data.get("enabled", False)),
        public_key=data.get("public_key", ""),
        secret_key=data.get("secret_key", ""),
        host=data.get("host", "https://cloud.langfuse.com"),
        debug=_as_bool(data.get("debug", False)),
    )


def _section(raw_config: dict, name: str) -> dict:
    value = raw_config.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


# =============================================================================
# Validation and loading
# =============================================================================


def validate_app_config(app_config: AppConfig) -> list[str]:
    """
    Validate a loaded configuration.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = list(app_config.agent.validate())
    for provider_id, provider in app_config.providers.items():
        if not provider.connection.base_url:
            errors.append(f"Provider '{provider_id}': missing connection.base_url")
        if not provider.connection.model:
            errors.append(f"Provider '{provider_id}': missing connection.model")
        if provider.defaults.timeout <= 0:
            errors.append(f"Provider '{provider_id}': timeout must be positive")
    if app_config.providers and not any(
        p.pool is PoolName.PRIMARY for p in app_config.providers.values()
    ):
        errors.append("No primary providers configured")
    return errors


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load unified application configuration from a YAML file.

    Subsequent calls return the cached config unless reload=True.

    Args:
        path: Path to the YAML file. If None, uses the VANILLAFLOW_CONFIG
              env var or the default path (config/config.yaml).
        reload: If True, force reload from disk instead of using cache.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If the config is empty or invalid
    """
    global _app_config

    if _app_config is not None and not reload:
        return _app_config

    if path is None:
        path = os.environ.get("VANILLAFLOW_CONFIG", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found at {config_path}. "
            f"Create one from config/config.yaml.template or set VANILLAFLOW_CONFIG."
        )

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Configuration file {config_path} is not valid YAML: {e}") from e

    if raw_config is None:
        raise ConfigError(f"Configuration file {config_path} is empty")
    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    raw_config = _substitute_env_vars_recursive(raw_config)

    app_config = AppConfig(
        version=str(raw_config.get("version", "1.0")),
        agent=_parse_agent_options(_section(raw_config, "agent")),
        providers=_parse_providers(_section(raw_config, "providers")),
        logging=_parse_logging_config(_section(raw_config, "logging")),
        langfuse=_parse_langfuse_config(_section(raw_config, "langfuse")),
    )

    for error in validate_app_config(app_config):
        logger.warning(f"Config validation warning: {error}")

    _app_config = app_config
    logger.debug(
        f"Configuration loaded: version={app_config.version}, "
        f"providers={list(app_config.providers.keys())}"
    )
    return app_config


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _app_config
    _app_config = None
    logger.debug("Configuration cache reset")
