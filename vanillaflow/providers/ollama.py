"""
Ollama provider using the native ``/api/chat`` endpoint.
"""

import logging
import time
from typing import Optional

import requests

from ..errors import ProviderError
from ..models import ChatResult, ProviderCapabilities, ProviderDefaults, ProviderTier
from .base import BaseProvider, usage_from_counts

logger = logging.getLogger(__name__)


class OllamaProvider(BaseProvider):
    """Non-streaming chat against an Ollama server."""

    def __init__(
        self,
        provider_id: str,
        base_url: str,
        model: str,
        tier: ProviderTier = ProviderTier.FREE,
        capabilities: Optional[ProviderCapabilities] = None,
        defaults: Optional[ProviderDefaults] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(provider_id, tier, capabilities)
        self.endpoint = base_url.rstrip("/") + "/api/chat"
        self.model = model
        self.defaults = defaults or ProviderDefaults()
        self.session = session or requests.Session()

    def chat(
        self,
        messages: list[dict],
        tool_schemas: Optional[list[dict]] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        payload: dict = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.defaults.temperature,
                "num_predict": self.defaults.max_tokens,
            },
        }
        if tool_schemas and self.capabilities.native_tools:
            payload["tools"] = tool_schemas

        start = time.monotonic()
        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                timeout=timeout if timeout is not None else self.defaults.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Ollama call to {self.endpoint} failed: {e}")
            raise ProviderError(self.id, e) from e

        try:
            content = data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise ProviderError(self.id, f"malformed response: missing {e}") from e

        return ChatResult(
            content=content or "",
            provider_id=self.id,
            usage=usage_from_counts(data.get("prompt_eval_count"), data.get("eval_count")),
            latency=time.monotonic() - start,
        )
