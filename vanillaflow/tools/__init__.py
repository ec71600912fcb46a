"""
vanillaflow tools package

- registry: per-agent ToolRegistry and ToolDefinition
- arithmetic: reference add/subtract/multiply/divide/calculate tools
"""

from .registry import ToolDefinition, ToolRegistry, default_formatter, object_schema
from .arithmetic import register_arithmetic_tools

__all__ = [
    "ToolDefinition",
    "ToolRegistry",
    "default_formatter",
    "object_schema",
    "register_arithmetic_tools",
]
