"""
Provider adapters and the provider gateway.

- base: BaseProvider interface, CallableProvider, ProviderGroup
- openai_compatible: vLLM / OpenRouter / OpenAI via the openai SDK
- ollama: Ollama native chat API via requests
- gateway: sequential, racing and smart strategies with tiered fallback
"""

import logging

from ..errors import ConfigError
from ..models import ConnectionType, PoolName, ProviderSettings
from .base import BaseProvider, CallableProvider, ProviderGroup, usage_from_counts
from .gateway import FREE_TIER_SAVINGS_PER_1K_TOKENS, ProviderGateway, estimate_savings
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def build_provider(settings: ProviderSettings) -> BaseProvider:
    """Instantiate the adapter matching a provider's connection type."""
    connection = settings.connection
    if connection.type is ConnectionType.OPENAI_COMPATIBLE:
        return OpenAICompatibleProvider(
            provider_id=settings.id,
            base_url=connection.base_url,
            model=connection.model,
            api_key=connection.api_key,
            tier=settings.tier,
            capabilities=settings.capabilities,
            defaults=settings.defaults,
        )
    if connection.type is ConnectionType.OLLAMA:
        return OllamaProvider(
            provider_id=settings.id,
            base_url=connection.base_url,
            model=connection.model,
            tier=settings.tier,
            capabilities=settings.capabilities,
            defaults=settings.defaults,
        )
    raise ConfigError(f"Unsupported connection type for provider '{settings.id}': {connection.type}")


def build_provider_group(providers: dict[str, ProviderSettings]) -> ProviderGroup:
    """Build a ProviderGroup from configured providers, keeping file order."""
    group = ProviderGroup()
    for settings in providers.values():
        provider = build_provider(settings)
        if settings.pool is PoolName.FALLBACK:
            group.fallback.append(provider)
        else:
            group.primary.append(provider)
        logger.debug(f"Configured provider '{settings.id}' ({settings.pool.value}, {settings.tier.value})")
    return group


__all__ = [
    "BaseProvider",
    "CallableProvider",
    "ProviderGroup",
    "OpenAICompatibleProvider",
    "OllamaProvider",
    "ProviderGateway",
    "FREE_TIER_SAVINGS_PER_1K_TOKENS",
    "estimate_savings",
    "usage_from_counts",
    "build_provider",
    "build_provider_group",
]
