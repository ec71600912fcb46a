"""
Step loop for tool-augmented runs.

Each step rebuilds the provider-facing prompt from the conversation state,
asks the ProviderGateway for a completion, recovers at most one tool call
from the text, executes it and lets the Reflector decide how to proceed.

Phases: INIT -> PLANNING -> EXECUTING -> REFLECTING -> EXECUTING | DONE | FAILED.
Every terminal path returns an AgentResult carrying the history and metrics
accumulated so far.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional, Union

from ..errors import (
    ConfigError,
    ParseError,
    ProviderAttempt,
    ProviderExhausted,
    StopCondition,
    ToolExecutionError,
    VanillaFlowError,
    truncate_error,
)
from ..models import ChatResult, Message, ToolCall
from ..providers.gateway import ProviderGateway
from ..tracing import Observation, TracingContext
from .extractor import ToolCallExtractor
from .planner import Plan, Planner, PlanStep
from .reflector import Reflection, Reflector, Verdict, validate_tool_result
from .state import AgentContext, RunMetrics, RunPhase
from .tool_defs import build_system_prompt, build_tool_definitions

logger = logging.getLogger(__name__)

STATUS_DONE = "done"
STATUS_FAILED = "failed"


@dataclass
class StepResult:
    """Outcome of one executed plan step."""

    step: PlanStep
    raw_text: str
    content: str
    chat: Optional[ChatResult] = None
    iteration: int = 0
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[str] = None
    error: Optional[VanillaFlowError] = None
    parse_error: Optional[ParseError] = None
    ignored_markers: int = 0

    @property
    def is_final(self) -> bool:
        return self.tool_call is None

    def as_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "goal": self.step.goal,
            "provider_id": self.chat.provider_id if self.chat else None,
            "content": self.content,
            "tool_call": self.tool_call.to_payload() if self.tool_call else None,
            "tool_result": self.tool_result,
            "error": str(self.error) if self.error else None,
            "parse_error": self.parse_error.reason if self.parse_error else None,
            "is_final": self.is_final,
        }


@dataclass
class RunTrace:
    """What happened during a run, for inspection by the host."""

    plan: Optional[Plan] = None
    steps: list[StepResult] = field(default_factory=list)
    reflections: list[Reflection] = field(default_factory=list)
    provider_attempts: list[ProviderAttempt] = field(default_factory=list)

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def reflection_count(self) -> int:
        return len(self.reflections)

    def tools_used(self) -> list[str]:
        """Unique tool names in first-use order."""
        seen: list[str] = []
        for step in self.steps:
            if step.tool_call and step.tool_call.name not in seen:
                seen.append(step.tool_call.name)
        return seen

    def as_dicts(self) -> list[dict]:
        return [s.as_dict() for s in self.steps]


@dataclass
class AgentResult:
    """Terminal result of a run."""

    status: str
    final_answer: Optional[str]
    messages: list[Message]
    metrics: RunMetrics
    trace: RunTrace
    error: Optional[VanillaFlowError] = None
    stop_reason: Optional[str] = None
    run_id: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_DONE

    def raise_for_status(self) -> "AgentResult":
        """Re-raise the stored error if the run failed."""
        if self.error is not None:
            raise self.error
        return self


@contextmanager
def _traced(
    parent: Union[TracingContext, Observation, None], kind: str, name: str, **attributes: Any
) -> Generator[Optional[Observation], None, None]:
    if parent is None:
        yield None
        return
    factory = parent.generation if kind == "generation" else parent.span
    with factory(name, **attributes) as obs:
        yield obs


class Executor:
    """
    Drives a Plan through the provider gateway, extractor and reflector.

    Collaborators are created from the run's options when not supplied.
    """

    def __init__(
        self,
        gateway: Optional[ProviderGateway] = None,
        planner: Optional[Planner] = None,
        reflector: Optional[Reflector] = None,
        extractor: Optional[ToolCallExtractor] = None,
    ):
        self.gateway = gateway
        self.planner = planner or Planner()
        self.reflector = reflector or Reflector()
        self.extractor = extractor

    def run(self, context: AgentContext) -> AgentResult:
        """
        Run the loop to completion.

        Returns:
            AgentResult; ``status`` is "done" when the model produced a final
            answer and "failed" otherwise.

        Raises:
            ConfigError: If the run options are invalid.
        """
        problems = context.options.validate()
        if problems:
            raise ConfigError("Invalid agent options: " + "; ".join(problems))

        tracing = context.tracing_context
        if tracing is not None:
            tracing.start_trace(
                name="agent_run",
                query=context.latest_user_text(),
                metadata={"max_steps": context.options.max_steps},
            )

        logger.debug("[%s] Starting run with %d messages", context.run_id, len(context.messages))
        result = self._run(context)

        if tracing is not None:
            tracing.end_trace(
                output=result.final_answer,
                status="success" if result.ok else "error",
                metadata=result.metrics.as_dict(),
            )
        self._log_trace_summary(result)
        return result

    def _run(self, context: AgentContext) -> AgentResult:
        state = context.state
        options = context.options
        trace = RunTrace()
        gateway = self.gateway or ProviderGateway.from_options(options)
        extractor = self.extractor or ToolCallExtractor(marker=options.marker)

        try:
            state.transition(RunPhase.PLANNING)
            plan = self.planner.plan(context)
            trace.plan = plan
            state.transition(RunPhase.EXECUTING)

            cursor = 0
            while True:
                if context.cancelled:
                    raise StopCondition(StopCondition.CANCELLED, "cancel event set")

                if cursor < len(plan.steps):
                    step = plan.steps[cursor]
                else:
                    step = self.planner.extend(plan, context)
                cursor += 1

                step_result = self._execute_step(step, context, gateway, extractor, trace)
                trace.steps.append(step_result)

                state.transition(RunPhase.REFLECTING)
                reflection = self.reflector.reflect(step_result, context)
                trace.reflections.append(reflection)

                if reflection.verdict is Verdict.STOP:
                    state.transition(RunPhase.DONE)
                    return self._result(context, trace, STATUS_DONE, final_answer=step_result.content)
                if reflection.verdict is Verdict.FAIL:
                    raise reflection.error or StopCondition(reflection.reason)
                state.transition(RunPhase.EXECUTING)

        except StopCondition as e:
            logger.warning("[%s] %s", context.run_id, e)
            state.transition(RunPhase.FAILED)
            return self._result(context, trace, STATUS_FAILED, error=e, stop_reason=e.reason)
        except ProviderExhausted as e:
            logger.error("[%s] %s", context.run_id, e)
            trace.provider_attempts.extend(e.attempts)
            state.metrics.provider_attempts += len(e.attempts)
            state.transition(RunPhase.FAILED)
            return self._result(context, trace, STATUS_FAILED, error=e)

    # =========================================================================
    # One step
    # =========================================================================

    def _execute_step(
        self,
        step: PlanStep,
        context: AgentContext,
        gateway: ProviderGateway,
        extractor: ToolCallExtractor,
        trace: RunTrace,
    ) -> StepResult:
        state = context.state
        step_number = state.iteration + 1

        with _traced(
            context.tracing_context,
            "span",
            f"step_{step_number}",
            input={"goal": step.goal},
            metadata={"strategy": step.strategy.value, "expected_tool": step.expected_tool},
        ) as span:
            messages = self.build_messages(context, step, extractor)

            logger.debug("[%s] Step %d: calling providers", context.run_id, step_number)
            chat = self._call_providers(gateway, messages, context, span)
            state.metrics.record_chat(chat)
            trace.provider_attempts.extend(chat.attempts)

            if chat.tool_call is not None:
                extraction = extractor.from_native(chat.content, chat.tool_call, context.tools.names())
            else:
                extraction = extractor.extract(chat.content, context.tools.names())
            if extraction.parse_error is not None:
                state.metrics.parse_failures += 1

            state.append(Message.assistant(extraction.cleaned_content, extraction.tool_call))
            result = StepResult(
                step=step,
                raw_text=chat.content,
                content=extraction.cleaned_content,
                chat=chat,
                tool_call=extraction.tool_call,
                parse_error=extraction.parse_error,
                ignored_markers=extraction.ignored_markers,
            )

            if extraction.tool_call is not None:
                self._run_tool(extraction.tool_call, context, result, span)

            result.iteration = state.advance_iteration()
            if span is not None:
                span.set_output(result.as_dict())
        return result

    def _call_providers(
        self,
        gateway: ProviderGateway,
        messages: list[dict],
        context: AgentContext,
        span: Optional[Observation],
    ) -> ChatResult:
        tool_schemas = build_tool_definitions(context.tools) or None
        with _traced(span, "generation", "provider_call", model="provider_gateway", input=messages) as gen:
            try:
                chat = gateway.call(
                    messages,
                    context.providers,
                    timeout=context.options.timeout,
                    tool_schemas=tool_schemas,
                )
            except ProviderExhausted:
                if gen is not None:
                    gen.set_status("error")
                raise
            if gen is not None:
                gen.set_output(chat.content)
                gen.set_usage(chat.usage)
        return chat

    def _run_tool(
        self,
        call: ToolCall,
        context: AgentContext,
        result: StepResult,
        span: Optional[Observation],
    ) -> None:
        """Execute a tool and append its (possibly synthetic error) result."""
        state = context.state
        tool = context.tools.get(call.name)
        error: Optional[ToolExecutionError] = None

        with _traced(span, "span", f"tool:{call.name}", input=call.arguments) as tool_span:
            try:
                if tool is None:
                    raise ToolExecutionError(call.name, "unknown tool", call.arguments)
                missing = tool.missing_arguments(call.arguments)
                if missing:
                    raise ToolExecutionError(
                        call.name, f"missing required arguments: {', '.join(missing)}", call.arguments
                    )
                raw_result = tool.handler(call.arguments)
                validate_tool_result(tool, raw_result)
                text = tool.formatter(raw_result)
            except ToolExecutionError as e:
                error = e
            except Exception as e:
                error = ToolExecutionError(call.name, e, call.arguments)

            if error is not None:
                logger.error("[%s] %s", context.run_id, error)
                text = truncate_error(f"Error: {error.cause}")
                if tool_span is not None:
                    tool_span.set_status("error")
            if tool_span is not None:
                tool_span.set_output({"result": truncate_error(text)})

        state.append(Message.tool(call, text, is_error=error is not None))
        state.record_tool_call(call, text, is_error=error is not None)
        result.tool_result = text
        result.error = error

    # =========================================================================
    # Prompt assembly
    # =========================================================================

    def build_messages(
        self, context: AgentContext, step: PlanStep, extractor: ToolCallExtractor
    ) -> list[dict]:
        """
        Provider-facing messages for one step.

        One system prompt (host system text, tools, marker protocol, step goal)
        followed by the non-system history. Tool calls are re-rendered in
        canonical marker form and tool results become user turns so that
        text-only providers can follow the exchange.
        """
        host_system = "\n\n".join(m.content for m in context.messages if m.role == "system")
        system_prompt = build_system_prompt(
            context.tools,
            marker=extractor.marker,
            host_system=host_system or None,
            goal=step.goal,
        )

        messages = [{"role": "system", "content": system_prompt}]
        for message in context.messages:
            if message.role == "system":
                continue
            if message.role == "assistant":
                content = message.content
                if message.tool_call is not None:
                    rendered = extractor.render(message.tool_call)
                    content = f"{content}\n{rendered}" if content else rendered
                messages.append({"role": "assistant", "content": content})
            elif message.role == "tool":
                label = "error" if message.is_error else "result"
                messages.append(
                    {"role": "user", "content": f"Tool {message.name} {label}: {message.content}"}
                )
            else:
                messages.append({"role": message.role, "content": message.content})
        return messages

    # =========================================================================
    # Results and logging
    # =========================================================================

    @staticmethod
    def _result(
        context: AgentContext,
        trace: RunTrace,
        status: str,
        final_answer: Optional[str] = None,
        error: Optional[VanillaFlowError] = None,
        stop_reason: Optional[str] = None,
    ) -> AgentResult:
        context.state.metrics.finish()
        return AgentResult(
            status=status,
            final_answer=final_answer,
            messages=list(context.messages),
            metrics=context.state.metrics,
            trace=trace,
            error=error,
            stop_reason=stop_reason,
            run_id=context.run_id,
        )

    @staticmethod
    def _log_trace_summary(result: AgentResult) -> None:
        """Log a compact trace summary."""
        id_prefix = f"[{result.run_id}] " if result.run_id else ""
        logger.info("%s%s", id_prefix, "─" * 50)
        logger.info("%sTRACE SUMMARY (%s)", id_prefix, result.status)
        logger.info("%s%s", id_prefix, "─" * 50)
        for step in result.trace.steps:
            if step.tool_call is None:
                logger.info("%sStep %d [FINAL] via %s", id_prefix, step.iteration,
                            step.chat.provider_id if step.chat else "?")
            elif step.error is not None:
                logger.error(
                    "%sStep %d: %s failed: %s", id_prefix, step.iteration, step.tool_call.name, step.error
                )
            else:
                preview = step.tool_result or ""
                if len(preview) > 80:
                    preview = preview[:80] + "..."
                logger.info(
                    "%sStep %d: %s -> %s", id_prefix, step.iteration, step.tool_call.name, preview
                )
        if result.stop_reason:
            logger.info("%sStopped: %s", id_prefix, result.stop_reason)
        logger.info("%sMetrics: %s", id_prefix, result.metrics.as_dict())
