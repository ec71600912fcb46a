"""
OpenAI-compatible provider (vLLM, SGLang, OpenRouter, OpenAI).
"""

import json
import logging
import time
from typing import Optional

import json_repair
from openai import OpenAI

from ..errors import ProviderError
from ..models import (
    ChatResult,
    ProviderCapabilities,
    ProviderDefaults,
    ProviderTier,
    ToolCall,
    new_call_id,
)
from .base import BaseProvider, usage_from_counts

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(BaseProvider):
    """Chat completions over the ``openai`` SDK."""

    def __init__(
        self,
        provider_id: str,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        tier: ProviderTier = ProviderTier.PAID,
        capabilities: Optional[ProviderCapabilities] = None,
        defaults: Optional[ProviderDefaults] = None,
        client: Optional[OpenAI] = None,
    ):
        super().__init__(provider_id, tier, capabilities)
        self.base_url = base_url
        self.model = model
        self.defaults = defaults or ProviderDefaults()
        self.client = client or OpenAI(
            base_url=base_url,
            api_key=api_key or "dummy",  # vLLM doesn't require auth
        )

    def chat(
        self,
        messages: list[dict],
        tool_schemas: Optional[list[dict]] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        create_kwargs: dict = {
            "model": self.model,
            "messages": messages,
            "temperature": self.defaults.temperature,
            "max_tokens": self.defaults.max_tokens,
            "timeout": timeout if timeout is not None else self.defaults.timeout,
        }
        if tool_schemas and self.capabilities.native_tools:
            create_kwargs["tools"] = tool_schemas

        start = time.monotonic()
        try:
            response = self.client.chat.completions.create(
                **create_kwargs  # type: ignore[arg-type]
            )
        except Exception as e:
            logger.warning(f"OpenAI-compatible call to {self.base_url} failed: {e}")
            raise ProviderError(self.id, e) from e

        if not response.choices:
            raise ProviderError(self.id, "response contained no choices")

        usage = None
        if response.usage is not None:
            usage = usage_from_counts(
                response.usage.prompt_tokens, response.usage.completion_tokens
            )
        message = response.choices[0].message
        tool_call = None
        if self.capabilities.native_tools and message.tool_calls:
            tool_call = self._first_tool_call(message.tool_calls)
        return ChatResult(
            content=message.content or "",
            provider_id=self.id,
            usage=usage,
            latency=time.monotonic() - start,
            tool_call=tool_call,
        )

    def _first_tool_call(self, tool_calls) -> ToolCall:
        """Normalise the first native function call; the rest are dropped."""
        if len(tool_calls) > 1:
            logger.info(f"{self.id}: ignoring {len(tool_calls) - 1} additional native tool call(s)")
        native = tool_calls[0]
        raw = native.function.arguments or "{}"
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError:
            arguments = json_repair.loads(raw)
        if not isinstance(arguments, dict):
            logger.warning(f"{self.id}: native tool call arguments are not an object: {raw[:200]}")
            arguments = {}
        return ToolCall(name=native.function.name, arguments=arguments, id=native.id or new_call_id())
