"""
Tool Registry - Single source of truth for tool definitions.

Each run receives its own registry instance; nothing is shared between runs.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel


def default_formatter(result: Any) -> str:
    """Render a tool result as text for the model."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str)


@dataclass
class ToolDefinition:
    """Metadata for a tool - defined once, used everywhere."""

    name: str
    description: str
    parameters: dict  # JSON schema of the arguments object
    handler: Callable[[dict], Any]
    formatter: Callable[[Any], str] = default_formatter
    # Optional declaration of the expected result shape.
    result_model: Optional[type[BaseModel]] = None

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    @property
    def properties(self) -> dict:
        return dict(self.parameters.get("properties", {}))

    def missing_arguments(self, arguments: dict) -> list[str]:
        """Names of required arguments absent from ``arguments``."""
        return [name for name in self.required if name not in arguments]


def object_schema(properties: dict[str, Any], required: Optional[list[str]] = None) -> dict:
    """Build a JSON-schema object from ``{name: description | schema}``.

    Plain string values are treated as string parameters with that
    description.
    """
    props: dict[str, dict] = {}
    for name, spec in properties.items():
        if isinstance(spec, str):
            props[name] = {"type": "string", "description": spec}
        else:
            props[name] = dict(spec)
    return {
        "type": "object",
        "properties": props,
        "required": list(required) if required is not None else list(props),
    }


@dataclass
class ToolRegistry:
    """Registry of the tools available to one agent."""

    _tools: dict[str, ToolDefinition] = field(default_factory=dict)

    def register(
        self,
        name: str,
        description: str,
        parameters: dict,
        handler: Callable[[dict], Any],
        formatter: Optional[Callable[[Any], str]] = None,
        result_model: Optional[type[BaseModel]] = None,
    ) -> ToolDefinition:
        """Register a tool with its metadata.

        ``parameters`` may be a full JSON schema (``{"type": "object", ...}``)
        or a shorthand ``{param: description}`` mapping.
        """
        if not name or not name.strip():
            raise ValueError("Tool name must not be empty")
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")

        schema = parameters if parameters.get("type") == "object" else object_schema(parameters)
        tool = ToolDefinition(
            name=name,
            description=description,
            parameters=schema,
            handler=handler,
            formatter=formatter or default_formatter,
            result_model=result_model,
        )
        self._tools[name] = tool
        return tool

    def tool(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[dict] = None,
        result_model: Optional[type[BaseModel]] = None,
    ) -> Callable[[Callable[[dict], Any]], Callable[[dict], Any]]:
        """Decorator form of :meth:`register`; the docstring is the description."""

        def decorator(fn: Callable[[dict], Any]) -> Callable[[dict], Any]:
            self.register(
                name=name or fn.__name__,
                description=description or (fn.__doc__ or "").strip(),
                parameters=parameters or {"type": "object", "properties": {}, "required": []},
                handler=fn,
                result_model=result_model,
            )
            return fn

        return decorator

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Get a tool by name."""
        return self._tools.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._tools)

    def all_tools(self) -> dict[str, ToolDefinition]:
        """Get a copy of all registered tools."""
        return self._tools.copy()

    def get_tools_summary(self) -> str:
        """Get formatted summary of all tools for prompts."""
        lines = []
        for name, tool in self._tools.items():
            lines.append(f"- {name}: {tool.description}")
        return "\n".join(lines)

    def clear(self) -> None:
        self._tools.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))
