"""
Tool definitions for the step loop.

Converts ToolRegistry entries into OpenAI-style JSON tool definitions (handed
to providers that call tools natively) and formats them into the marker
protocol block of the system prompt for providers that only complete text.
"""

import json
import logging
from typing import Optional

from ..models import DEFAULT_MARKER
from ..tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def build_tool_definitions(
    registry: ToolRegistry,
    exclude_tools: Optional[set[str]] = None,
) -> list[dict]:
    """
    Build OpenAI function-calling tool definitions from the registry.

    Args:
        registry: The run's tool registry.
        exclude_tools: Tool names to leave out.

    Returns:
        List of OpenAI-format tool definitions.
    """
    exclude = exclude_tools or set()
    tools: list[dict] = []
    for tool_def in registry:
        if tool_def.name in exclude:
            logger.debug("Excluding tool '%s'", tool_def.name)
            continue
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": tool_def.name,
                    "description": tool_def.description,
                    "parameters": tool_def.parameters,
                },
            }
        )
    return tools


def build_tools_prompt_block(tools: list[dict], marker: str = DEFAULT_MARKER) -> str:
    """
    Format tool definitions and the marker protocol as a prompt block.

    Args:
        tools: OpenAI-format tool definitions (from ``build_tool_definitions``).
        marker: The line prefix that introduces a tool call.

    Returns:
        Prompt text to embed in the system prompt.
    """
    if not tools:
        return ""

    lines = [
        "# Tools",
        "",
        "You can use the following tools. Each is described by a JSON function signature:",
    ]
    for tool in tools:
        lines.append(json.dumps(tool["function"], separators=(",", ":")))
    lines.extend(
        [
            "",
            "To call a tool, write a single line of the form:",
            f'{marker} {{"name": "<tool-name>", "arguments": {{<args-json-object>}}}}',
            "",
            "Rules:",
            f"- Emit at most one {marker} line per reply; extra calls are ignored.",
            "- After a tool call, stop and wait. The result arrives in the next message.",
            "- When you have everything you need, reply with the final answer and no tool call.",
        ]
    )
    return "\n".join(lines)


def build_system_prompt(
    registry: ToolRegistry,
    marker: str = DEFAULT_MARKER,
    host_system: Optional[str] = None,
    goal: Optional[str] = None,
) -> str:
    """
    Assemble the single system prompt for one step.

    Combines the host's own system text, the tool block and the goal of the
    current plan step.
    """
    sections = []
    if host_system and host_system.strip():
        sections.append(host_system.strip())
    else:
        sections.append("You are a helpful assistant that solves tasks step by step.")

    block = build_tools_prompt_block(build_tool_definitions(registry), marker)
    if block:
        sections.append(block)
    if goal:
        sections.append(f"# Current step\n\n{goal}")
    return "\n\n".join(sections)
