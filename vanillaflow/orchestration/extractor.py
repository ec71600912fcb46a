"""
VANILLA tool-call extraction.

Providers without native function calling are prompted to emit a marker line
followed by a single JSON object::

    TOOL_CALL: {"name": "multiply", "arguments": {"a": 15, "b": 8}}

Only the first marker in a turn is honoured so that tool calls execute
strictly one at a time; any further markers are stripped and never executed.
The captured JSON goes through an ordered chain of repair attempts and the
first one that yields ``{"name": str, "arguments": object}`` wins. When every
attempt fails the original text is passed through untouched.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import json_repair

from ..errors import ParseError
from ..models import DEFAULT_MARKER, ToolCall

logger = logging.getLogger(__name__)

@dataclass
class _ScanState:
    """Bracket state at the end of a scanned fragment."""

    open_stack: list[str]
    in_string: bool


def _scan(fragment: str) -> _ScanState:
    """Track unclosed brackets and string state, ignoring quoted text."""
    stack: list[str] = []
    in_string = False
    escape = False
    for ch in fragment:
        if escape:
            escape = False
            continue
        if in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return _ScanState(open_stack=stack, in_string=in_string)


def _strip_trailing_commas(fragment: str) -> str:
    """Drop commas that precede a closer or the end, leaving quoted text alone."""
    out: list[str] = []
    in_string = False
    escape = False
    for i, ch in enumerate(fragment):
        if escape:
            escape = False
        elif in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            rest = fragment[i + 1 :].lstrip()
            if not rest or rest[0] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def _missing_closers(fragment: str) -> str:
    closers = {"{": "}", "[": "]"}
    return "".join(closers[ch] for ch in reversed(_scan(fragment).open_stack))


def find_object_end(text: str, start: int) -> tuple[int, bool]:
    """
    Find the end of the JSON object that opens at ``text[start]``.

    Returns:
        ``(end, closed)`` where ``end`` is exclusive. When the object never
        closes, ``end`` is ``len(text)`` and ``closed`` is False.
    """
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1, True
    return len(text), False


# =============================================================================
# Repair chain
# =============================================================================


def parse_as_is(raw: str) -> Any:
    return json.loads(raw)


def parse_with_closing_braces(raw: str) -> Any:
    """Append whatever closing braces/brackets the fragment is missing."""
    closers = _missing_closers(raw)
    if not closers:
        raise ValueError("nothing to close")
    return json.loads(raw + closers)


def parse_without_trailing_commas(raw: str) -> Any:
    """Drop trailing commas before a closer (or at the end), then close."""
    cleaned = _strip_trailing_commas(raw)
    if cleaned == raw:
        raise ValueError("no trailing comma")
    return json.loads(cleaned + _missing_closers(cleaned))


def parse_with_closed_string(raw: str) -> Any:
    """Terminate a string cut off mid-value, then close."""
    if not _scan(raw).in_string:
        raise ValueError("no unterminated string")
    fixed = raw + '"'
    return json.loads(fixed + _missing_closers(fixed))


def parse_lenient(raw: str) -> Any:
    """Last resort: let json_repair rebuild the object."""
    value = json_repair.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("lenient repair did not produce an object")
    return value


# Ordered, independent attempts; the first valid call short-circuits.
REPAIR_CHAIN: tuple[tuple[str, Callable[[str], Any]], ...] = (
    ("as_is", parse_as_is),
    ("closing_braces", parse_with_closing_braces),
    ("trailing_commas", parse_without_trailing_commas),
    ("closed_string", parse_with_closed_string),
    ("lenient", parse_lenient),
)


def validate_payload(value: Any, known_tools: Optional[Iterable[str]] = None) -> tuple[str, dict]:
    """
    Check a decoded payload against the protocol.

    Raises:
        ValueError: If ``name``/``arguments`` are missing or malformed, or the
            name is not a registered tool.
    """
    if not isinstance(value, dict):
        raise ValueError("payload is not an object")
    name = value.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("missing tool name")
    arguments = value.get("arguments")
    if isinstance(arguments, str):
        # Double-encoded arguments
        arguments = json.loads(arguments)
    if not isinstance(arguments, dict):
        raise ValueError("arguments is not an object")
    if known_tools is not None and name not in set(known_tools):
        raise ValueError(f"unknown tool '{name}'")
    return name, arguments


def repair_payload(
    raw: str, known_tools: Optional[Iterable[str]] = None
) -> tuple[str, dict, str]:
    """
    Run the repair chain over a captured JSON fragment.

    Returns:
        ``(name, arguments, step_name)`` for the first successful attempt.

    Raises:
        ParseError: If every attempt fails.
    """
    known = frozenset(known_tools) if known_tools is not None else None
    last_reason = "empty payload"
    for step_name, attempt in REPAIR_CHAIN:
        try:
            name, arguments = validate_payload(attempt(raw), known)
        except (ValueError, TypeError, RecursionError) as e:
            last_reason = f"{step_name}: {e}"
            continue
        if step_name != "as_is":
            logger.debug("Tool call JSON repaired via '%s'", step_name)
        return name, arguments, step_name
    raise ParseError(raw, last_reason)


# =============================================================================
# Extractor
# =============================================================================


@dataclass
class ExtractionResult:
    """Outcome of scanning one model turn."""

    cleaned_content: str
    tool_call: Optional[ToolCall] = None
    parse_error: Optional[ParseError] = None
    ignored_markers: int = 0
    repair_step: Optional[str] = None

    @property
    def has_marker(self) -> bool:
        return self.tool_call is not None or self.parse_error is not None


class ToolCallExtractor:
    """Recovers at most one ToolCall per turn from raw model text."""

    def __init__(
        self,
        marker: str = DEFAULT_MARKER,
        known_tools: Optional[Iterable[str]] = None,
    ):
        if not marker.strip():
            raise ValueError("marker must not be blank")
        self.marker = marker
        self.known_tools = frozenset(known_tools) if known_tools is not None else None

    def _payload_span(self, text: str, marker_at: int) -> tuple[int, int]:
        """Span ``(start, end)`` of the payload following a marker."""
        start = marker_at + len(self.marker)
        while start < len(text) and text[start] in " \t\r\n":
            start += 1
        if start < len(text) and text[start] == "{":
            end, _ = find_object_end(text, start)
            return start, end
        line_end = text.find("\n", start)
        return start, len(text) if line_end == -1 else line_end

    def extract(
        self, text: str, known_tools: Optional[Iterable[str]] = None
    ) -> ExtractionResult:
        """
        Scan ``text`` for the first marker and parse its payload.

        Args:
            text: Raw completion text.
            known_tools: Registered tool names; overrides the instance set.

        Returns:
            ExtractionResult. ``cleaned_content`` has the markers removed only
            when a ToolCall was produced; otherwise it equals ``text``.
        """
        known = frozenset(known_tools) if known_tools is not None else self.known_tools
        marker_at = text.find(self.marker)
        if marker_at == -1:
            return ExtractionResult(cleaned_content=text)

        start, end = self._payload_span(text, marker_at)
        raw = text[start:end].rstrip()
        if not raw.startswith("{"):
            error = ParseError(raw, "no JSON object after marker")
            logger.warning("Tool call marker without JSON payload; passing text through")
            return ExtractionResult(cleaned_content=text, parse_error=error)

        try:
            name, arguments, step_name = repair_payload(raw, known)
        except ParseError as e:
            logger.warning("Failed to parse tool call: %s", e.reason)
            return ExtractionResult(cleaned_content=text, parse_error=e)

        remainder, ignored = self._strip_markers(text[end:])
        if ignored:
            logger.info("Ignoring %d additional tool call marker(s) in one turn", ignored)

        cleaned = _tidy_whitespace(text[:marker_at] + remainder)
        return ExtractionResult(
            cleaned_content=cleaned,
            tool_call=ToolCall(name=name, arguments=arguments),
            ignored_markers=ignored,
            repair_step=step_name,
        )

    def from_native(
        self, content: str, call: ToolCall, known_tools: Optional[Iterable[str]] = None
    ) -> ExtractionResult:
        """
        Accept a structured call returned by a provider with native tools.

        The native call takes precedence over any markers in ``content``,
        which are stripped like any other surplus marker. An unknown tool
        name is reported as a parse error and the text passes through.
        """
        known = frozenset(known_tools) if known_tools is not None else self.known_tools
        try:
            validate_payload(call.to_payload(), known)
        except ValueError as e:
            logger.warning("Rejected native tool call: %s", e)
            return ExtractionResult(
                cleaned_content=content,
                parse_error=ParseError(json.dumps(call.to_payload()), str(e)),
            )

        remainder, ignored = self._strip_markers(content)
        if ignored:
            logger.info("Ignoring %d tool call marker(s) alongside a native call", ignored)
        return ExtractionResult(
            cleaned_content=_tidy_whitespace(remainder),
            tool_call=call,
            ignored_markers=ignored,
            repair_step="native",
        )

    def _strip_markers(self, text: str) -> tuple[str, int]:
        """Remove every remaining marker and its payload."""
        parts: list[str] = []
        count = 0
        cursor = 0
        while True:
            marker_at = text.find(self.marker, cursor)
            if marker_at == -1:
                parts.append(text[cursor:])
                break
            parts.append(text[cursor:marker_at])
            _, cursor = self._payload_span(text, marker_at)
            count += 1
        return "".join(parts), count

    def render(self, call: ToolCall) -> str:
        """Canonical wire form of a tool call."""
        return f"{self.marker} {json.dumps(call.to_payload())}"


def _tidy_whitespace(text: str) -> str:
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()
