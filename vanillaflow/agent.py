"""
Host-facing facade.

Wires a tool registry, a provider group and run options into an Executor.
Each call to :meth:`Agent.run` gets a fresh AgentContext, so one Agent can
serve many runs.
"""

import logging
import threading
from typing import Iterable, Optional

from .config import get_config
from .models import AgentOptions, AppConfig
from .orchestration import AgentContext, AgentResult, Executor, Planner, Reflector
from .orchestration.extractor import ToolCallExtractor
from .orchestration.state import MessageLike
from .providers import ProviderGateway, ProviderGroup, build_provider_group
from .tools.registry import ToolRegistry
from .tracing import TracingContext

logger = logging.getLogger(__name__)


class Agent:
    """
    Tool-augmented agent over text-completion providers.

    Args:
        tools: Tools the model may call.
        providers: Primary and fallback provider pools.
        options: Run options; defaults come from ``AGENT_*`` environment
            variables.
        planner: Replacement planner (e.g. with a custom classifier).
    """

    def __init__(
        self,
        tools: ToolRegistry,
        providers: ProviderGroup,
        options: Optional[AgentOptions] = None,
        planner: Optional[Planner] = None,
        reflector: Optional[Reflector] = None,
    ):
        if not providers:
            raise ValueError("At least one provider is required")
        self.tools = tools
        self.providers = providers
        self.options = options or get_config().agent.to_options()
        self.planner = planner or Planner()
        self.reflector = reflector or Reflector()

    @classmethod
    def from_config(cls, app_config: AppConfig, tools: ToolRegistry) -> "Agent":
        """Build an Agent from a loaded YAML configuration."""
        return cls(
            tools=tools,
            providers=build_provider_group(app_config.providers),
            options=app_config.agent,
        )

    def run(
        self,
        messages: Iterable[MessageLike],
        cancel_event: Optional[threading.Event] = None,
        tracing_context: Optional[TracingContext] = None,
    ) -> AgentResult:
        """
        Run the agent on a conversation.

        Args:
            messages: Message objects or OpenAI-style dicts, usually an
                optional system prompt followed by the user request.
            cancel_event: Set it to stop the run at the next step boundary.
            tracing_context: Optional Langfuse tracing for this run.

        Returns:
            AgentResult; call ``raise_for_status()`` to turn failures into
            exceptions.
        """
        context = AgentContext.create(
            messages,
            tools=self.tools,
            providers=self.providers,
            options=self.options,
            cancel_event=cancel_event,
            tracing_context=tracing_context,
        )
        executor = Executor(
            gateway=ProviderGateway.from_options(self.options),
            planner=self.planner,
            reflector=self.reflector,
            extractor=ToolCallExtractor(marker=self.options.marker),
        )
        return executor.run(context)


def run_agent(
    messages: Iterable[MessageLike],
    tools: ToolRegistry,
    providers: ProviderGroup,
    options: Optional[AgentOptions] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AgentResult:
    """Convenience function to run a single conversation."""
    return Agent(tools, providers, options).run(messages, cancel_event=cancel_event)
