"""
Step-loop orchestration.

Planner -> Executor -> (ProviderGateway, ToolCallExtractor, tools) -> Reflector,
with all per-run state held in an AgentContext.
"""

from .extractor import ExtractionResult, ToolCallExtractor, REPAIR_CHAIN, repair_payload
from .state import AgentContext, ConversationState, RunMetrics, RunPhase, ToolRecord
from .planner import Classification, Plan, Planner, PlanStep, StrategyTag, classify_request
from .reflector import Reflection, Reflector, Verdict
from .tool_defs import build_system_prompt, build_tool_definitions, build_tools_prompt_block
from .loop import AgentResult, Executor, RunTrace, StepResult

__all__ = [
    "ExtractionResult",
    "ToolCallExtractor",
    "REPAIR_CHAIN",
    "repair_payload",
    "AgentContext",
    "ConversationState",
    "RunMetrics",
    "RunPhase",
    "ToolRecord",
    "Classification",
    "Plan",
    "Planner",
    "PlanStep",
    "StrategyTag",
    "classify_request",
    "Reflection",
    "Reflector",
    "Verdict",
    "build_system_prompt",
    "build_tool_definitions",
    "build_tools_prompt_block",
    "AgentResult",
    "Executor",
    "RunTrace",
    "StepResult",
]
