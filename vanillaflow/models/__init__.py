"""
Data models for vanillaflow.
"""

from .provider import (
    ConnectionType,
    ProviderTier,
    PoolName,
    ProviderConnection,
    ProviderCapabilities,
    ProviderDefaults,
    ProviderSettings,
)
from .config import (
    DEFAULT_MARKER,
    StrategyMode,
    AgentOptions,
    LoggingConfig,
    LangfuseConfig,
    AppConfig,
)
from .messages import (
    ToolCall,
    Message,
    TokenUsage,
    ChatResult,
    new_call_id,
)

__all__ = [
    # Provider models
    "ConnectionType",
    "ProviderTier",
    "PoolName",
    "ProviderConnection",
    "ProviderCapabilities",
    "ProviderDefaults",
    "ProviderSettings",
    # Config models
    "DEFAULT_MARKER",
    "StrategyMode",
    "AgentOptions",
    "LoggingConfig",
    "LangfuseConfig",
    "AppConfig",
    # Conversation models
    "ToolCall",
    "Message",
    "TokenUsage",
    "ChatResult",
    "new_call_id",
]
