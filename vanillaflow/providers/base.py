"""
Provider interface and provider pools.

A provider turns a list of chat messages into raw completion text. Every
backend (OpenAI-compatible servers, Ollama, an in-process callable) sits
behind the same ``chat`` method so the gateway can treat them uniformly.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

from ..errors import ProviderError
from ..models import ChatResult, ProviderCapabilities, ProviderTier, TokenUsage

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """A text-completion endpoint."""

    def __init__(
        self,
        provider_id: str,
        tier: ProviderTier = ProviderTier.PAID,
        capabilities: Optional[ProviderCapabilities] = None,
    ):
        if not provider_id:
            raise ValueError("provider_id must not be empty")
        self.id = provider_id
        self.tier = tier
        self.capabilities = capabilities or ProviderCapabilities()

    @property
    def is_free(self) -> bool:
        return self.tier is ProviderTier.FREE

    @abstractmethod
    def chat(
        self,
        messages: list[dict],
        tool_schemas: Optional[list[dict]] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        """
        Send a chat request.

        Args:
            messages: OpenAI-style ``{"role", "content"}`` dicts.
            tool_schemas: Function definitions, used only when the provider
                advertises ``native_tools``.
            timeout: Request timeout in seconds.

        Raises:
            ProviderError: On transport failure or a malformed response.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, tier={self.tier.value})"


ChatFn = Callable[[list[dict]], Union[str, ChatResult]]


class CallableProvider(BaseProvider):
    """Wraps a host callable ``fn(messages) -> str | ChatResult``."""

    def __init__(
        self,
        provider_id: str,
        fn: ChatFn,
        tier: ProviderTier = ProviderTier.PAID,
        capabilities: Optional[ProviderCapabilities] = None,
    ):
        super().__init__(provider_id, tier, capabilities)
        self._fn = fn

    def chat(
        self,
        messages: list[dict],
        tool_schemas: Optional[list[dict]] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        start = time.monotonic()
        try:
            output = self._fn(messages)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(self.id, e) from e

        latency = time.monotonic() - start
        if isinstance(output, ChatResult):
            output.provider_id = output.provider_id or self.id
            output.latency = output.latency or latency
            return output
        if not isinstance(output, str):
            raise ProviderError(self.id, f"expected str, got {type(output).__name__}")
        return ChatResult(content=output, provider_id=self.id, latency=latency)


def usage_from_counts(prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> Optional[TokenUsage]:
    """Build TokenUsage from optional counters reported by a backend."""
    if prompt_tokens is None and completion_tokens is None:
        return None
    prompt = prompt_tokens or 0
    completion = completion_tokens or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
    )


@dataclass
class ProviderGroup:
    """Primary and fallback pools; primary is always tried first."""

    primary: list[BaseProvider] = field(default_factory=list)
    fallback: list[BaseProvider] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for provider in self:
            if provider.id in seen:
                raise ValueError(f"Duplicate provider id '{provider.id}'")
            seen.add(provider.id)

    def tiers(self) -> list[tuple[str, list[BaseProvider]]]:
        """Non-empty pools in the order they are tried."""
        return [
            (name, pool)
            for name, pool in (("primary", self.primary), ("fallback", self.fallback))
            if pool
        ]

    def get(self, provider_id: str) -> Optional[BaseProvider]:
        for provider in self:
            if provider.id == provider_id:
                return provider
        return None

    def __iter__(self) -> Iterator[BaseProvider]:
        return iter([*self.primary, *self.fallback])

    def __len__(self) -> int:
        return len(self.primary) + len(self.fallback)

    def __bool__(self) -> bool:
        return len(self) > 0
