"""
Reflector: judges each executed step.

Validates the shape of the step outcome, enforces the tool retry budget,
detects non-progress loops and bounds the history. The verdict tells the
executor whether to continue, stop with a final answer or fail.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

from ..errors import StopCondition, ToolExecutionError
from ..tools.registry import ToolDefinition
from .state import AgentContext, ConversationState

if TYPE_CHECKING:
    from .loop import StepResult

logger = logging.getLogger(__name__)


class Verdict(Enum):
    CONTINUE = "continue"
    STOP = "stop"
    FAIL = "fail"


@dataclass
class Reflection:
    verdict: Verdict
    reason: str = ""
    error: Optional[StopCondition] = None
    issues: list[str] = field(default_factory=list)
    pruned: int = 0


def validate_tool_result(tool: ToolDefinition, result: object) -> None:
    """
    Check a raw tool result against the tool's declared result model.

    Raises:
        ToolExecutionError: If the result does not match.
    """
    if tool.result_model is None or isinstance(result, tool.result_model):
        return
    try:
        if isinstance(result, str):
            tool.result_model.model_validate_json(result)
        else:
            tool.result_model.model_validate(result)
    except ValidationError as e:
        raise ToolExecutionError(tool.name, f"unexpected result shape: {e}") from e


class Reflector:
    """Per-step verdicts and history bounding."""

    def reflect(self, step_result: "StepResult", context: AgentContext) -> Reflection:
        """
        Decide what happens after one step.

        Checks run in order: tool retry budget, non-progress loop, final
        answer, step budget. Pruning runs whenever the run continues.
        """
        state = context.state
        options = context.options
        issues: list[str] = []

        if step_result.parse_error is not None:
            issues.append(f"unparseable tool call: {step_result.parse_error.reason}")

        if isinstance(step_result.error, ToolExecutionError):
            failures = state.tool_failures.get(step_result.tool_call.signature(), 0)
            issues.append(str(step_result.error))
            if failures > options.tool_retry_budget:
                return self._fail(
                    StopCondition(
                        StopCondition.TOOL_RETRY_BUDGET,
                        f"'{step_result.error.tool_name}' failed {failures} times with the same arguments",
                    ),
                    issues,
                )

        if step_result.tool_call is not None and self.is_looping(state, options.loop_threshold):
            return self._fail(
                StopCondition(
                    StopCondition.NO_PROGRESS,
                    f"'{step_result.tool_call.name}' repeated {options.loop_threshold} times with identical results",
                ),
                issues,
            )

        if step_result.tool_call is None:
            return Reflection(verdict=Verdict.STOP, reason="final answer", issues=issues)

        if state.iteration >= options.max_steps:
            return self._fail(
                StopCondition(StopCondition.MAX_STEPS, f"limit of {options.max_steps} steps"),
                issues,
            )

        pruned = self.prune(context)
        return Reflection(verdict=Verdict.CONTINUE, reason="tool result pending", issues=issues, pruned=pruned)

    @staticmethod
    def is_looping(state: ConversationState, threshold: int) -> bool:
        """True if the last ``threshold`` steps all called the same tool with the same outcome."""
        if len(state.tool_history) < threshold:
            return False
        recent = state.tool_history[-threshold:]
        iterations = [r.iteration for r in recent]
        # Only consecutive steps count as a loop.
        if iterations != list(range(iterations[0], iterations[0] + threshold)):
            return False
        first = recent[0]
        return all(r.signature == first.signature and r.result == first.result for r in recent[1:])

    def prune(self, context: AgentContext) -> int:
        """Prune the history when it exceeds the message or token budget."""
        state = context.state
        options = context.options
        over_messages = 0 < options.max_history_messages < len(state.messages)
        over_tokens = 0 < options.max_history_tokens < state.estimated_tokens()
        if not (over_messages or over_tokens):
            return 0
        return state.prune(options.keep_recent_turns, options.preserve_system_messages)

    @staticmethod
    def _fail(error: StopCondition, issues: list[str]) -> Reflection:
        logger.warning(f"Stopping run: {error}")
        return Reflection(verdict=Verdict.FAIL, reason=error.reason, error=error, issues=issues)
