"""
vanillaflow - tool-augmented agents over plain text-completion providers

This package provides:
- Provider gateway with sequential, racing and smart strategies over
  primary/fallback pools
- Text tool-call extraction (``TOOL_CALL:`` marker) with JSON repair
- A bounded plan/execute/reflect step loop with history pruning
- YAML/environment configuration and optional Langfuse tracing
"""

from .agent import Agent, run_agent
from .errors import (
    ConfigError,
    ParseError,
    ProviderError,
    ProviderExhausted,
    StopCondition,
    ToolExecutionError,
    VanillaFlowError,
)
from .models import AgentOptions, Message, ProviderTier, StrategyMode, ToolCall
from .orchestration import AgentResult
from .providers import CallableProvider, OllamaProvider, OpenAICompatibleProvider, ProviderGroup
from .tools import ToolRegistry, register_arithmetic_tools

__all__ = [
    "Agent",
    "run_agent",
    "AgentResult",
    "AgentOptions",
    "Message",
    "ToolCall",
    "ProviderTier",
    "StrategyMode",
    "CallableProvider",
    "OpenAICompatibleProvider",
    "OllamaProvider",
    "ProviderGroup",
    "ToolRegistry",
    "register_arithmetic_tools",
    "VanillaFlowError",
    "ConfigError",
    "ProviderError",
    "ProviderExhausted",
    "ParseError",
    "ToolExecutionError",
    "StopCondition",
]

__version__ = "0.1.0"
