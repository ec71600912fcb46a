"""
Error taxonomy for vanillaflow.

Transport failures are absorbed by the provider gateway, parse failures never
abort a run, and tool failures are handed back to the model before they
escalate. Only ``ProviderExhausted`` is fatal.
"""

from dataclasses import dataclass
from typing import Any, Optional

# Error text injected into the conversation is capped at this many characters.
MAX_ERROR_CHARS = 500


def truncate_error(message: str, limit: int = MAX_ERROR_CHARS) -> str:
    """Cap an error message so it can be safely fed back to a model."""
    if len(message) > limit:
        return message[:limit] + "..."
    return message


class VanillaFlowError(Exception):
    """Base error for all vanillaflow operations."""


class ConfigError(VanillaFlowError, ValueError):
    """Raised when configuration is missing or invalid."""


class ProviderError(VanillaFlowError):
    """A single provider failed (transport, timeout or malformed response)."""

    def __init__(self, provider_id: str, cause: Any):
        self.provider_id = provider_id
        self.cause = cause
        super().__init__(f"Provider '{provider_id}' failed: {cause}")


@dataclass
class ProviderAttempt:
    """One provider invocation made by the gateway."""

    provider_id: str
    tier: str
    success: bool
    latency: float = 0.0
    cause: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "tier": self.tier,
            "success": self.success,
            "latency": round(self.latency, 4),
            "cause": self.cause,
        }


class ProviderExhausted(VanillaFlowError):
    """Every provider in both tiers failed."""

    def __init__(self, attempts: list[ProviderAttempt]):
        self.attempts = list(attempts)
        tried = ", ".join(a.provider_id for a in self.attempts) or "none"
        super().__init__(
            f"All providers exhausted after {len(self.attempts)} attempts ({tried})"
        )


class ParseError(VanillaFlowError):
    """A tool-call marker was present but its payload could not be repaired."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Unparseable tool call ({reason}): {raw[:200]}")


class ToolExecutionError(VanillaFlowError):
    """A tool handler raised or returned an invalid result."""

    def __init__(
        self,
        tool_name: str,
        cause: Any,
        arguments: Optional[dict] = None,
    ):
        self.tool_name = tool_name
        self.cause = cause
        self.arguments = arguments or {}
        super().__init__(f"Tool '{tool_name}' failed: {truncate_error(str(cause))}")


class StopCondition(VanillaFlowError):
    """The run was terminated before producing a final answer.

    Not fatal to the caller: the accumulated history and metrics are still
    returned in the ``AgentResult``.
    """

    NO_PROGRESS = "no_progress"
    MAX_STEPS = "max_steps"
    TOOL_RETRY_BUDGET = "tool_retry_budget"
    CANCELLED = "cancelled"

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = f"Run stopped: {reason}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
