"""
Conversation data models shared by the gateway, extractor and loop.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import ProviderAttempt


def new_call_id() -> str:
    """Generate an identifier for a tool call parsed from text."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class ToolCall:
    """A structured tool invocation recovered from model output."""

    name: str
    arguments: dict
    id: str = field(default_factory=new_call_id)

    def signature(self) -> str:
        """Stable key for this name + arguments pair."""
        return f"{self.name}:{json.dumps(self.arguments, sort_keys=True, default=str)}"

    def to_payload(self) -> dict:
        return {"name": self.name, "arguments": self.arguments}


@dataclass
class Message:
    """A single conversation turn."""

    role: str
    content: str = ""
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_call: Optional[ToolCall] = None) -> "Message":
        return cls(role="assistant", content=content, tool_call=tool_call)

    @classmethod
    def tool(
        cls, call: ToolCall, content: str, is_error: bool = False
    ) -> "Message":
        return cls(
            role="tool",
            content=content,
            tool_call_id=call.id,
            name=call.name,
            is_error=is_error,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Build a Message from an OpenAI-style chat message dict."""
        return cls(
            role=data.get("role", "user"),
            content=data.get("content") or "",
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )

    def as_dict(self) -> dict:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name:
            data["name"] = self.name
        if self.tool_call:
            data["tool_call"] = self.tool_call.to_payload()
        return data


@dataclass
class TokenUsage:
    """Token accounting reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResult:
    """Raw completion text returned by a provider."""

    content: str
    provider_id: str = ""
    usage: Optional[TokenUsage] = None
    latency: float = 0.0
    # Every attempt the gateway made to obtain this result, failures included.
    attempts: list[ProviderAttempt] = field(default_factory=list)
    # First native function call, for providers that return structured calls.
    tool_call: Optional[ToolCall] = None
