"""
Tests for the Tool Registry.

Tests cover tool registration, retrieval, schemas and formatting.
"""

import pytest
from pydantic import BaseModel

from vanillaflow.tools import ToolRegistry, default_formatter, object_schema


class TestToolRegistry:
    """Tests for the ToolRegistry class."""

    def test_register_and_get(self):
        """Test registering a tool and retrieving it by name."""
        registry = ToolRegistry()
        registry.register("echo", "Echo the text", {"text": "text to echo"}, lambda args: args["text"])

        tool = registry.get("echo")

        assert tool is not None
        assert tool.name == "echo"
        assert tool.handler({"text": "hi"}) == "hi"
        assert "echo" in registry
        assert len(registry) == 1

    def test_get_nonexistent_tool(self):
        """Test retrieving a nonexistent tool returns None."""
        assert ToolRegistry().get("nonexistent_tool") is None

    def test_shorthand_parameters(self):
        """Shorthand parameters become a JSON-schema object with all fields required."""
        registry = ToolRegistry()
        tool = registry.register("echo", "Echo", {"text": "text to echo"}, lambda args: args)

        assert tool.parameters == {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "text to echo"}},
            "required": ["text"],
        }

    def test_full_schema_kept(self):
        """A full JSON schema is used as given."""
        schema = {"type": "object", "properties": {"n": {"type": "integer"}}, "required": []}
        tool = ToolRegistry().register("count", "Count", schema, lambda args: 0)

        assert tool.parameters is schema
        assert tool.missing_arguments({}) == []

    def test_duplicate_name_rejected(self):
        """Names are unique within a registry."""
        registry = ToolRegistry()
        registry.register("echo", "Echo", {}, lambda args: args)

        with pytest.raises(ValueError):
            registry.register("echo", "Echo again", {}, lambda args: args)

    def test_blank_name_rejected(self):
        """Tool names must not be blank."""
        with pytest.raises(ValueError):
            ToolRegistry().register(" ", "Nothing", {}, lambda args: args)

    def test_registries_are_independent(self):
        """Each registry holds its own tools."""
        first = ToolRegistry()
        second = ToolRegistry()
        first.register("echo", "Echo", {}, lambda args: args)

        assert "echo" not in second

    def test_decorator(self):
        """The decorator registers a function with its docstring as description."""
        registry = ToolRegistry()

        @registry.tool()
        def shout(args):
            """Upper-case the text."""
            return args["text"].upper()

        tool = registry.get("shout")
        assert tool.description == "Upper-case the text."
        assert tool.handler({"text": "hi"}) == "HI"

    def test_missing_arguments(self, math_registry):
        """Required arguments absent from a call are reported."""
        assert math_registry.get("divide").missing_arguments({"a": 1}) == ["b"]

    def test_tools_summary(self, math_registry):
        """Summary lists one line per tool."""
        summary = math_registry.get_tools_summary()

        assert "- add: Add two numbers" in summary
        assert len(summary.splitlines()) == 5

    def test_names(self, math_registry):
        """names() returns the registered tool names."""
        assert math_registry.names() == {"add", "subtract", "multiply", "divide", "calculate"}


class TestFormatting:
    """Tests for result formatting helpers."""

    class Point(BaseModel):
        x: int
        y: int

    def test_default_formatter(self):
        """Strings pass through; other values are JSON-encoded."""
        assert default_formatter("text") == "text"
        assert default_formatter(120) == "120"
        assert default_formatter({"a": 1}) == '{"a": 1}'

    def test_pydantic_result(self):
        """Pydantic models are dumped as JSON."""
        assert default_formatter(self.Point(x=1, y=2)) == '{"x":1,"y":2}'

    def test_object_schema_explicit_required(self):
        """An explicit required list overrides the default."""
        schema = object_schema({"a": "first", "b": {"type": "number"}}, required=["a"])

        assert schema["required"] == ["a"]
        assert schema["properties"]["b"] == {"type": "number"}
