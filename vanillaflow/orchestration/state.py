"""
Conversation state and agent context for a single run.

``ConversationState`` owns the message history, the iteration counter, the
run phase and the metrics. It is created per run and never shared; the
history only shrinks through :meth:`ConversationState.prune`.
"""

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from ..errors import StopCondition
from ..models import AgentOptions, ChatResult, Message, ToolCall
from ..providers.base import ProviderGroup
from ..providers.gateway import estimate_savings
from ..tools.registry import ToolRegistry
from ..tracing import TracingContext

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


class RunPhase(Enum):
    """Lifecycle phase of a run."""

    INIT = "init"
    PLANNING = "planning"
    EXECUTING = "executing"
    REFLECTING = "reflecting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunPhase.DONE, RunPhase.FAILED)


ALLOWED_TRANSITIONS: dict[RunPhase, frozenset[RunPhase]] = {
    RunPhase.INIT: frozenset({RunPhase.PLANNING, RunPhase.FAILED}),
    RunPhase.PLANNING: frozenset({RunPhase.EXECUTING, RunPhase.FAILED}),
    RunPhase.EXECUTING: frozenset({RunPhase.REFLECTING, RunPhase.FAILED}),
    RunPhase.REFLECTING: frozenset({RunPhase.EXECUTING, RunPhase.DONE, RunPhase.FAILED}),
    RunPhase.DONE: frozenset(),
    RunPhase.FAILED: frozenset(),
}


def estimate_tokens(messages: Iterable[Message]) -> int:
    """Rough token count at four characters per token."""
    return math.ceil(sum(len(m.content) for m in messages) / CHARS_PER_TOKEN)


@dataclass
class RunMetrics:
    """Counters accumulated over one run."""

    start_time: float = field(default_factory=time.monotonic)
    end_time: Optional[float] = None
    provider_calls: int = 0
    provider_attempts: int = 0
    tool_executions: int = 0
    tool_failures: int = 0
    parse_failures: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_savings: float = 0.0
    pruned_messages: int = 0
    prune_events: int = 0

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    def record_chat(self, result: ChatResult) -> None:
        self.provider_calls += 1
        self.provider_attempts += len(result.attempts)
        if result.usage is not None:
            self.prompt_tokens += result.usage.prompt_tokens
            self.completion_tokens += result.usage.completion_tokens
            self.total_tokens += result.usage.total_tokens
        self.estimated_savings += estimate_savings(result)

    def finish(self) -> None:
        if self.end_time is None:
            self.end_time = time.monotonic()

    def as_dict(self) -> dict:
        return {
            "duration_ms": round(self.duration * 1000, 2),
            "provider_calls": self.provider_calls,
            "provider_attempts": self.provider_attempts,
            "tool_executions": self.tool_executions,
            "tool_failures": self.tool_failures,
            "parse_failures": self.parse_failures,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated_savings": round(self.estimated_savings, 6),
            "pruned_messages": self.pruned_messages,
            "prune_events": self.prune_events,
        }


@dataclass
class ToolRecord:
    """One tool execution as seen by loop detection."""

    iteration: int
    call: ToolCall
    result: str
    is_error: bool = False

    @property
    def signature(self) -> str:
        return self.call.signature()


@dataclass
class ConversationState:
    """Mutable state of one run."""

    messages: list[Message] = field(default_factory=list)
    max_steps: int = 8
    iteration: int = 0
    phase: RunPhase = RunPhase.INIT
    metrics: RunMetrics = field(default_factory=RunMetrics)
    tool_history: list[ToolRecord] = field(default_factory=list)
    tool_failures: dict[str, int] = field(default_factory=dict)

    def transition(self, target: RunPhase) -> None:
        """Move to ``target``; raises RuntimeError on an illegal transition."""
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise RuntimeError(
                f"Illegal phase transition {self.phase.value} -> {target.value}"
            )
        self.phase = target
        if target.is_terminal:
            self.metrics.finish()

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def advance_iteration(self) -> int:
        """Count one executed step."""
        if self.iteration >= self.max_steps:
            raise StopCondition(StopCondition.MAX_STEPS, f"limit of {self.max_steps} steps")
        self.iteration += 1
        return self.iteration

    @property
    def steps_remaining(self) -> int:
        return self.max_steps - self.iteration

    def record_tool_call(self, call: ToolCall, result: str, is_error: bool = False) -> int:
        """
        Record a tool execution.

        Returns:
            Failure count for this exact name + arguments pair.
        """
        self.tool_history.append(
            ToolRecord(iteration=self.iteration, call=call, result=result, is_error=is_error)
        )
        self.metrics.tool_executions += 1
        if not is_error:
            return self.tool_failures.get(call.signature(), 0)
        self.metrics.tool_failures += 1
        key = call.signature()
        self.tool_failures[key] = self.tool_failures.get(key, 0) + 1
        return self.tool_failures[key]

    def estimated_tokens(self) -> int:
        return estimate_tokens(self.messages)

    def prune(self, keep_recent: int, preserve_system: bool = True) -> int:
        """
        Drop older turns, keeping the newest ``keep_recent`` non-system ones.

        System messages are always kept when ``preserve_system`` is set.

        Returns:
            Number of messages removed.
        """
        if preserve_system:
            system = [m for m in self.messages if m.role == "system"]
            others = [m for m in self.messages if m.role != "system"]
        else:
            system, others = [], list(self.messages)

        if len(others) <= keep_recent:
            return 0
        kept = others[-keep_recent:] if keep_recent > 0 else []
        removed = len(others) - len(kept)
        kept_ids = {id(m) for m in kept}
        system_ids = {id(m) for m in system}
        # Keep surviving messages in their original relative order.
        self.messages = [m for m in self.messages if id(m) in kept_ids or id(m) in system_ids]
        self.metrics.pruned_messages += removed
        self.metrics.prune_events += 1
        logger.info(f"Pruned {removed} messages ({len(self.messages)} remain)")
        return removed


MessageLike = Union[Message, dict]


def normalize_messages(messages: Iterable[MessageLike]) -> list[Message]:
    """Accept Message objects or OpenAI-style dicts."""
    normalized = []
    for message in messages:
        if isinstance(message, Message):
            normalized.append(message)
        elif isinstance(message, dict):
            normalized.append(Message.from_dict(message))
        else:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")
    return normalized


@dataclass
class AgentContext:
    """Everything one run needs: state, tools, providers and options."""

    state: ConversationState
    tools: ToolRegistry
    providers: ProviderGroup
    options: AgentOptions = field(default_factory=AgentOptions)
    cancel_event: Optional[threading.Event] = None
    tracing_context: Optional[TracingContext] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    @classmethod
    def create(
        cls,
        messages: Iterable[MessageLike],
        tools: ToolRegistry,
        providers: ProviderGroup,
        options: Optional[AgentOptions] = None,
        cancel_event: Optional[threading.Event] = None,
        tracing_context: Optional[TracingContext] = None,
    ) -> "AgentContext":
        options = options or AgentOptions()
        state = ConversationState(messages=normalize_messages(messages), max_steps=options.max_steps)
        return cls(
            state=state,
            tools=tools,
            providers=providers,
            options=options,
            cancel_event=cancel_event,
            tracing_context=tracing_context,
        )

    @property
    def messages(self) -> list[Message]:
        return self.state.messages

    @property
    def metrics(self) -> RunMetrics:
        return self.state.metrics

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def latest_user_text(self) -> str:
        """Content of the most recent user message, or empty."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""
