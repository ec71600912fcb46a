"""
Heuristic planner.

Classifies the latest user request into a bounded step plan. The classifier
is a pure function over the request text and the registered tools; it only
needs to be deterministic and cheap, not correct. Hosts can replace it by
passing their own ``classifier`` to :class:`Planner`.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from ..tools.registry import ToolDefinition, ToolRegistry
from .state import AgentContext

logger = logging.getLogger(__name__)


class StrategyTag(Enum):
    """How the plan expects the model to work through the request."""

    DIRECT = "direct"
    ITERATIVE = "iterative"
    PARALLEL_TOOLS = "parallel_tools"


@dataclass
class PlanStep:
    index: int
    goal: str
    strategy: StrategyTag
    expected_tool: Optional[str] = None
    adaptive: bool = False


@dataclass
class Plan:
    strategy: StrategyTag
    steps: list[PlanStep] = field(default_factory=list)
    tool_hints: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one request."""

    sequential: bool
    tools: tuple[str, ...]


# Ordered connectives and enumerations that signal a multi-step request.
SEQUENCE_PATTERNS = (
    re.compile(r"\b(then|and then|after that|afterwards|next|finally|followed by|subsequently)\b"),
    re.compile(r"\bonce\b.+\b(done|finished|have|got|is)\b"),
    re.compile(r"\bafter\b.+\b(divide|multiply|add|subtract|use|take|compute|calculate)"),
    re.compile(r"(^|\n)\s*(\d+[.)]|step\s*\d+|[-*])\s+\S"),
    re.compile(r"\bfirst\b.+\b(second|then|next|after)\b"),
)

# Words that point at an arithmetic tool even when its name is not used.
SYNONYMS: dict[str, tuple[str, ...]] = {
    "multiply": ("multiply", "multiplied", "times", "product", "area", "×"),
    "divide": ("divide", "divided", "quotient", "split", "per", "÷", "ratio"),
    "add": ("add", "plus", "sum", "total", "added"),
    "subtract": ("subtract", "minus", "difference", "less", "subtracted"),
    "calculate": ("calculate", "compute", "evaluate", "expression"),
}

# Too common to say anything about which tool is meant.
STOPWORDS = frozenset(
    """a an and are as at be by for from get in into is it of on or the this that to two
    with number numbers value values given result results tool returns return using""".split()
)

_WORD = re.compile(r"[a-z0-9_×÷]+")


def _tool_keywords(tool: ToolDefinition) -> set[str]:
    keywords = {tool.name.lower()}
    keywords.update(part for part in tool.name.lower().split("_") if len(part) > 2)
    for word in _WORD.findall(tool.description.lower()):
        if len(word) > 3 and word not in STOPWORDS:
            keywords.add(word)
    keywords.update(SYNONYMS.get(tool.name.lower(), ()))
    return keywords


def _first_mention(text: str, keywords: Iterable[str]) -> Optional[int]:
    positions = []
    for keyword in keywords:
        match = re.search(rf"(?<![a-z0-9_]){re.escape(keyword)}(?![a-z0-9_])", text)
        if match:
            positions.append(match.start())
    return min(positions) if positions else None


def detect_sequence(text: str) -> bool:
    """True if the request reads like an ordered list of actions."""
    lowered = text.lower()
    return any(pattern.search(lowered) for pattern in SEQUENCE_PATTERNS)


def classify_request(text: str, tools: Iterable[ToolDefinition]) -> Classification:
    """
    Classify a request. Pure and deterministic.

    Args:
        text: The user's request.
        tools: Registered tool definitions.

    Returns:
        Classification with matched tool names ordered by first mention.
    """
    lowered = text.lower()
    mentions = []
    for tool in tools:
        position = _first_mention(lowered, _tool_keywords(tool))
        if position is not None:
            mentions.append((position, tool.name))
    mentions.sort()
    return Classification(
        sequential=detect_sequence(text),
        tools=tuple(name for _, name in mentions),
    )


Classifier = Callable[[str, Iterable[ToolDefinition]], Classification]


class Planner:
    """Turns a classification into a Plan bounded by ``max_steps``."""

    FINAL_GOAL = "Combine the tool results and give the final answer to the user."

    def __init__(self, classifier: Classifier = classify_request):
        self.classifier = classifier

    def plan(self, context: AgentContext) -> Plan:
        request = context.latest_user_text()
        classification = self.classifier(request, context.tools)
        plan = self._build(classification, context.tools, context.options.default_plan_steps)

        limit = context.options.max_steps
        if len(plan.steps) > limit:
            logger.debug(f"Truncating plan from {len(plan.steps)} to {limit} steps")
            plan.steps = plan.steps[:limit]

        logger.info(
            f"[{context.run_id}] Plan: {plan.strategy.value} with {len(plan.steps)} steps"
            + (f" (tools: {', '.join(plan.tool_hints)})" if plan.tool_hints else "")
        )
        return plan

    def _build(
        self, classification: Classification, tools: ToolRegistry, default_steps: int
    ) -> Plan:
        matched = list(classification.tools)

        if not matched and not classification.sequential:
            return Plan(
                strategy=StrategyTag.DIRECT,
                steps=[PlanStep(0, "Answer the user's request directly.", StrategyTag.DIRECT)],
            )

        if not matched:
            # Sequenced but no recognizable tool: generic iterative steps.
            steps = [
                PlanStep(i, "Work on the next part of the request, using a tool if needed.", StrategyTag.ITERATIVE)
                for i in range(default_steps - 1)
            ]
            steps.append(PlanStep(len(steps), self.FINAL_GOAL, StrategyTag.ITERATIVE))
            return Plan(strategy=StrategyTag.ITERATIVE, steps=steps)

        if len(matched) > 1 and not classification.sequential:
            strategy = StrategyTag.PARALLEL_TOOLS
        else:
            strategy = StrategyTag.ITERATIVE

        steps = []
        for name in matched:
            tool = tools.get(name)
            description = f" ({tool.description})" if tool and tool.description else ""
            steps.append(
                PlanStep(
                    index=len(steps),
                    goal=f"Call the '{name}' tool{description} for the relevant part of the request.",
                    strategy=strategy,
                    expected_tool=name,
                )
            )
        steps.append(PlanStep(len(steps), self.FINAL_GOAL, strategy))
        return Plan(strategy=strategy, steps=steps, tool_hints=matched)

    def extend(self, plan: Plan, context: AgentContext) -> PlanStep:
        """Append an adaptive step when the model needs another turn."""
        last = context.state.tool_history[-1] if context.state.tool_history else None
        if last is not None and last.is_error:
            goal = f"The '{last.call.name}' tool failed. Correct the call or answer without it."
        elif last is not None:
            goal = "Use the latest tool result to continue, or give the final answer."
        else:
            goal = "Continue working on the request, or give the final answer."
        step = PlanStep(
            index=len(plan.steps),
            goal=goal,
            strategy=plan.strategy,
            adaptive=True,
        )
        plan.steps.append(step)
        logger.debug(f"[{context.run_id}] Extended plan with adaptive step {step.index}")
        return step
