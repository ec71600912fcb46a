"""
Pytest configuration and fixtures for vanillaflow tests.
"""

import time
from typing import Optional

import pytest

from vanillaflow.config_loader import reset_config_cache
from vanillaflow.errors import ProviderError
from vanillaflow.models import ChatResult, ProviderTier, TokenUsage
from vanillaflow.providers.base import BaseProvider
from vanillaflow.tools import ToolRegistry, register_arithmetic_tools


class ScriptedProvider(BaseProvider):
    """Replays canned replies in order and records every request."""

    def __init__(
        self,
        provider_id: str,
        replies: Optional[list] = None,
        tier: ProviderTier = ProviderTier.PAID,
        delay: float = 0.0,
        fail: bool = False,
        usage: Optional[TokenUsage] = None,
    ):
        super().__init__(provider_id, tier)
        self.replies = list(replies or [])
        self.delay = delay
        self.fail = fail
        self.usage = usage
        self.calls: list[list[dict]] = []

    def chat(self, messages, tool_schemas=None, timeout=None):
        self.calls.append(messages)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise ProviderError(self.id, "scripted failure")
        if not self.replies:
            raise ProviderError(self.id, "script exhausted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ChatResult):
            return reply
        return ChatResult(content=reply, provider_id=self.id, usage=self.usage)


@pytest.fixture
def make_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def math_registry():
    """A registry holding the arithmetic tools."""
    return register_arithmetic_tools(ToolRegistry())


@pytest.fixture(autouse=True)
def clean_config_cache():
    """Each test starts with no cached YAML configuration."""
    reset_config_cache()
    yield
    reset_config_cache()
