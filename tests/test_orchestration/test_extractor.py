"""Tests for TOOL_CALL extraction and JSON repair."""

import json

import pytest

from vanillaflow.errors import ParseError
from vanillaflow.models import ToolCall
from vanillaflow.orchestration.extractor import (
    REPAIR_CHAIN,
    ToolCallExtractor,
    find_object_end,
    parse_lenient,
    parse_with_closed_string,
    parse_with_closing_braces,
    parse_without_trailing_commas,
    repair_payload,
    validate_payload,
)

TOOLS = {"multiply", "divide", "add"}


def _call(name: str, arguments: dict) -> str:
    return "TOOL_CALL: " + json.dumps({"name": name, "arguments": arguments})


class TestFirstCallOnly:
    """Only the first marker in a turn is honoured."""

    def test_extracts_single_call(self):
        """A single well-formed marker yields a ToolCall."""
        result = ToolCallExtractor().extract(_call("multiply", {"a": 15, "b": 8}), TOOLS)

        assert result.tool_call is not None
        assert result.tool_call.name == "multiply"
        assert result.tool_call.arguments == {"a": 15, "b": 8}
        assert result.parse_error is None
        assert result.repair_step == "as_is"

    def test_second_marker_is_ignored_and_stripped(self):
        """Only the first call is returned; later markers are removed."""
        text = (
            "Let me work this out.\n"
            + _call("multiply", {"a": 15, "b": 8})
            + "\n"
            + _call("divide", {"a": 120, "b": 3})
        )
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call.name == "multiply"
        assert result.ignored_markers == 1
        assert "TOOL_CALL" not in result.cleaned_content
        assert "divide" not in result.cleaned_content
        assert result.cleaned_content == "Let me work this out."

    def test_no_marker_passes_text_through(self):
        """Text without a marker is returned unchanged."""
        result = ToolCallExtractor().extract("The answer is 40.", TOOLS)

        assert result.tool_call is None
        assert result.parse_error is None
        assert result.cleaned_content == "The answer is 40."
        assert result.has_marker is False

    def test_nested_braces_in_strings(self):
        """Braces inside string values do not end the capture."""
        text = 'TOOL_CALL: {"name": "add", "arguments": {"a": 1, "b": 2, "note": "}{"}} trailing'
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call.arguments["note"] == "}{"
        assert result.cleaned_content == "trailing"

    def test_custom_marker(self):
        """The marker is configurable."""
        extractor = ToolCallExtractor(marker="CALL>>")
        result = extractor.extract('CALL>> {"name": "add", "arguments": {"a": 1, "b": 2}}', TOOLS)

        assert result.tool_call.name == "add"

    def test_blank_marker_rejected(self):
        """A blank marker is a programming error."""
        with pytest.raises(ValueError):
            ToolCallExtractor(marker="  ")


class TestRepair:
    """Malformed JSON is repaired by the ordered chain."""

    def test_missing_closing_brace(self):
        """A truncated object parses after closing braces are appended."""
        text = 'TOOL_CALL: {"name": "multiply", "arguments": {"a": 15, "b": 8}'
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is not None
        assert result.tool_call.arguments == {"a": 15, "b": 8}
        assert result.repair_step == "closing_braces"

    def test_trailing_comma_before_brace(self):
        """A trailing comma before the closing brace is stripped."""
        text = 'TOOL_CALL: {"name": "divide", "arguments": {"a": 120, "b": 3,},}'
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is not None
        assert result.tool_call.arguments == {"a": 120, "b": 3}
        assert result.repair_step == "trailing_commas"

    def test_trailing_comma_repair_leaves_strings_alone(self):
        """Commas inside string values survive the trailing-comma repair."""
        text = 'TOOL_CALL: {"name": "echo", "arguments": {"text": "a, }", "n": 1,}}'
        result = ToolCallExtractor().extract(text)

        assert result.repair_step == "trailing_commas"
        assert result.tool_call.arguments == {"text": "a, }", "n": 1}

    def test_comma_inside_string_is_not_trailing(self):
        """A comma before a quoted closer is not a trailing comma."""
        with pytest.raises(ValueError):
            parse_without_trailing_commas('{"text": "a, ]"')

    def test_unterminated_string(self):
        """A string cut off mid-value is closed."""
        text = 'TOOL_CALL: {"name": "add", "arguments": {"a": 1, "b": "2'
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is not None
        assert result.tool_call.arguments == {"a": 1, "b": "2"}
        assert result.repair_step == "closed_string"

    def test_string_encoded_arguments(self):
        """Arguments given as a JSON string are decoded."""
        payload = {"name": "add", "arguments": json.dumps({"a": 1, "b": 2})}
        result = ToolCallExtractor().extract("TOOL_CALL: " + json.dumps(payload), TOOLS)

        assert result.tool_call.arguments == {"a": 1, "b": 2}

    def test_chain_order(self):
        """The repair chain runs from strict to lenient."""
        assert [name for name, _ in REPAIR_CHAIN] == [
            "as_is",
            "closing_braces",
            "trailing_commas",
            "closed_string",
            "lenient",
        ]

    def test_steps_are_independent(self):
        """Each step refuses input it is not designed to fix."""
        with pytest.raises(ValueError):
            parse_with_closing_braces('{"a": 1}')
        with pytest.raises(ValueError):
            parse_without_trailing_commas('{"a": 1}')
        with pytest.raises(ValueError):
            parse_with_closed_string('{"a": 1}')

    def test_lenient_step_rejects_non_objects(self):
        """The lenient step only accepts objects."""
        with pytest.raises(ValueError):
            parse_lenient("[1, 2, 3]")


class TestNativeCalls:
    """Structured calls handed over by native-tools providers."""

    def test_accepts_registered_tool(self):
        """A known tool is taken as is, with the text kept."""
        call = ToolCall("add", {"a": 1, "b": 2})
        result = ToolCallExtractor().from_native("Adding now.", call, TOOLS)

        assert result.tool_call is call
        assert result.cleaned_content == "Adding now."
        assert result.repair_step == "native"

    def test_text_markers_are_ignored(self):
        """Markers in the text never compete with the native call."""
        call = ToolCall("add", {"a": 1, "b": 2})
        result = ToolCallExtractor().from_native(_call("divide", {"a": 1, "b": 0}), call, TOOLS)

        assert result.tool_call.name == "add"
        assert result.ignored_markers == 1
        assert result.cleaned_content == ""

    def test_unknown_tool_is_parse_failure(self):
        """An unregistered name is reported and the text passes through."""
        result = ToolCallExtractor().from_native("text", ToolCall("search", {}), TOOLS)

        assert result.tool_call is None
        assert result.cleaned_content == "text"
        assert "unknown tool" in result.parse_error.reason


class TestUnrepairable:
    """Failed repairs pass the text through untouched."""

    def test_garbage_payload_passes_through(self):
        """Unrepairable JSON yields no call and the original text."""
        text = "Sure. TOOL_CALL: {name: multiply 15 8 ]]] ::"
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is None
        assert isinstance(result.parse_error, ParseError)
        assert result.cleaned_content == text

    def test_marker_without_json(self):
        """A marker followed by prose is a parse failure."""
        text = "TOOL_CALL: multiply the numbers please"
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is None
        assert result.parse_error.reason == "no JSON object after marker"
        assert result.cleaned_content == text

    def test_unknown_tool_is_parse_failure(self):
        """A name outside the registry is treated as unparseable."""
        text = _call("sqrt", {"x": 4})
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is None
        assert "unknown tool" in result.parse_error.reason
        assert result.cleaned_content == text

    def test_missing_name(self):
        """A payload without a name is rejected."""
        text = 'TOOL_CALL: {"arguments": {"a": 1}}'
        result = ToolCallExtractor().extract(text, TOOLS)

        assert result.tool_call is None
        assert result.cleaned_content == text

    def test_no_registry_accepts_any_name(self):
        """Without a name set, any non-empty name is accepted."""
        result = ToolCallExtractor().extract(_call("anything", {}))

        assert result.tool_call.name == "anything"


class TestHelpers:
    """Tests for the scanning and validation helpers."""

    def test_find_object_end_closed(self):
        """The end index is just past the matching brace."""
        text = 'x {"a": {"b": 1}} y'
        end, closed = find_object_end(text, 2)

        assert closed is True
        assert text[2:end] == '{"a": {"b": 1}}'

    def test_find_object_end_unclosed(self):
        """An unclosed object runs to the end of the text."""
        text = '{"a": {"b": 1}'
        end, closed = find_object_end(text, 0)

        assert closed is False
        assert end == len(text)

    def test_validate_payload_rejects_list_arguments(self):
        """Arguments must be an object."""
        with pytest.raises(ValueError):
            validate_payload({"name": "add", "arguments": [1, 2]})

    def test_repair_payload_raises_parse_error(self):
        """repair_payload raises ParseError when every step fails."""
        with pytest.raises(ParseError):
            repair_payload('{"name": ""}', TOOLS)
