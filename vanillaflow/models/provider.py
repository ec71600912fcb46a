"""
Data models for provider configuration.

Describes the endpoints the gateway can route chat requests to, together
with their billing tier and the pool (primary or fallback) they belong to.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConnectionType(Enum):
    """Supported provider connection types."""

    OPENAI_COMPATIBLE = "openai_compatible"
    OLLAMA = "ollama"


class ProviderTier(Enum):
    """Billing tier of a provider endpoint."""

    FREE = "free"
    PAID = "paid"


class PoolName(Enum):
    """Which pool of a ProviderGroup a provider is placed in."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass
class ProviderConnection:
    """Connection details for a provider endpoint."""

    type: ConnectionType
    base_url: str
    model: str
    api_key: Optional[str] = None


@dataclass(frozen=True)
class ProviderCapabilities:
    """Capability flags advertised by a provider."""

    native_tools: bool = False
    streaming: bool = False


@dataclass
class ProviderDefaults:
    """Default generation parameters for a provider."""

    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: float = 30.0  # Request timeout in seconds


@dataclass
class ProviderSettings:
    """Complete configuration for a single provider endpoint."""

    id: str
    connection: ProviderConnection
    tier: ProviderTier = ProviderTier.PAID
    pool: PoolName = PoolName.PRIMARY
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)
    defaults: ProviderDefaults = field(default_factory=ProviderDefaults)
