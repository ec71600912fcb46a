"""
Arithmetic reference tools.

Binary operations (add, subtract, multiply, divide) plus a SymPy-backed
``calculate`` tool for free-form expressions. Handlers raise on bad input so
the loop can report the failure back to the model.
"""

import logging
import re
from typing import Union

from sympy import N
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    implicit_multiplication_application,
    convert_xor,
    factorial_notation,
)

from .registry import ToolRegistry

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Transformations for scientific calculator syntax
TRANSFORMATIONS = (
    standard_transformations
    + (implicit_multiplication_application,)
    + (convert_xor,)  # 2^16 -> 2**16
    + (factorial_notation,)  # 5! -> factorial(5)
)

_BINARY_SCHEMA = {
    "type": "object",
    "properties": {
        "a": {"type": "number", "description": "First operand"},
        "b": {"type": "number", "description": "Second operand"},
    },
    "required": ["a", "b"],
}


def _number(value: object, name: str) -> Number:
    if isinstance(value, bool):
        raise TypeError(f"Argument '{name}' must be a number, got a boolean")
    if isinstance(value, (int, float)):
        return value
    try:
        parsed = float(str(value).strip())
    except ValueError:
        raise TypeError(f"Argument '{name}' must be a number, got {value!r}") from None
    return int(parsed) if parsed.is_integer() else parsed


def _tidy(result: float) -> Number:
    """Collapse whole floats to ints (120.0 -> 120)."""
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


def add(args: dict) -> Number:
    return _tidy(_number(args.get("a"), "a") + _number(args.get("b"), "b"))


def subtract(args: dict) -> Number:
    return _tidy(_number(args.get("a"), "a") - _number(args.get("b"), "b"))


def multiply(args: dict) -> Number:
    return _tidy(_number(args.get("a"), "a") * _number(args.get("b"), "b"))


def divide(args: dict) -> Number:
    divisor = _number(args.get("b"), "b")
    if divisor == 0:
        raise ZeroDivisionError("Cannot divide by zero")
    return _tidy(_number(args.get("a"), "a") / divisor)


def preprocess_expression(expression: str) -> str:
    """
    Preprocess expression for SymPy compatibility.

    Handles:
        - Degree notation: sin(30 degrees) -> sin(30 * pi / 180)
        - ceil function: ceil(x) -> ceiling(x) (SymPy naming)
        - Unicode operators: × and ÷
    """
    degree_pattern = r"(\d+(?:\.\d+)?)\s*(?:degrees?|deg)\b"
    expression = re.sub(degree_pattern, r"(\1 * pi / 180)", expression, flags=re.IGNORECASE)
    expression = re.sub(r"\bceil\b", "ceiling", expression)
    return expression.replace("×", "*").replace("÷", "/")


def calculate(args: dict) -> Number:
    """Evaluate a mathematical expression such as ``2^10`` or ``sqrt(16)``."""
    expression = str(args.get("expression", "")).strip()
    if not expression:
        raise ValueError('Expression is empty. Expected {"expression": "2+2"}')

    try:
        expr = parse_expr(
            preprocess_expression(expression),
            transformations=TRANSFORMATIONS,
            evaluate=True,
        )
        value = complex(N(expr))
    except (SyntaxError, TypeError) as e:
        logger.debug("Could not evaluate '%s': %s", expression, e)
        raise ValueError(f"Cannot evaluate expression '{expression}': {e}") from e

    if value.imag != 0:
        raise ValueError(f"Expression '{expression}' has a complex result")
    return _tidy(value.real)


def register_arithmetic_tools(registry: ToolRegistry) -> ToolRegistry:
    """Register the arithmetic tools on ``registry`` and return it."""
    registry.register("add", "Add two numbers", _BINARY_SCHEMA, add)
    registry.register("subtract", "Subtract b from a", _BINARY_SCHEMA, subtract)
    registry.register("multiply", "Multiply two numbers", _BINARY_SCHEMA, multiply)
    registry.register("divide", "Divide a by b", _BINARY_SCHEMA, divide)
    registry.register(
        "calculate",
        "Calculate the value of a math expression",
        {"expression": "math expression like 2+2 or sqrt(16)"},
        calculate,
    )
    return registry
