"""Value model: integers, floats, strings and column sequences.

Arithmetic follows a small set of coercion rules:

- If either operand is a float the result is a float.
- ``int / int`` stays an int when the division is exact and becomes a
  float otherwise (``6 / 3 == 2``, ``7 / 2 == 3.5``).
- ``+`` on two strings concatenates; any other use of a string is a
  type mismatch.
- Sequences (from whole-column references) only feed function calls.
"""

from __future__ import annotations

import re
from typing import Callable, Union

from gridcalc.formulas.errors import FormulaDivisionError, FormulaTypeError

Scalar = Union[int, float, str]
Value = Union[int, float, str, tuple]

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+)([eE][+-]?\d+)?$|^[+-]?\d+[eE][+-]?\d+$")


def is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_sequence(value: object) -> bool:
    return isinstance(value, tuple)


def type_name(value: object) -> str:
    """Name of a value's type as shown in error messages."""
    if is_sequence(value):
        return "sequence"
    if isinstance(value, str):
        return "string"
    if isinstance(value, float):
        return "float"
    if isinstance(value, int):
        return "integer"
    return type(value).__name__


def coerce_literal(text: str) -> Scalar:
    """Turn raw cell text into a typed literal.

    ``"5"`` becomes ``5``, ``"3.5"`` becomes ``3.5``; everything else is
    kept as the stripped string.
    """
    s = text.strip()
    if _INT_RE.match(s):
        return int(s)
    if _FLOAT_RE.match(s):
        return float(s)
    return s


def _check_operands(op: str, left: Value, right: Value) -> None:
    if is_number(left) and is_number(right):
        return
    raise FormulaTypeError(
        f"Cannot apply {op!r} to {type_name(left)} and {type_name(right)}"
    )


def add(left: Value, right: Value) -> Value:
    if isinstance(left, str) and isinstance(right, str):
        return left + right
    _check_operands("+", left, right)
    return left + right


def sub(left: Value, right: Value) -> Value:
    _check_operands("-", left, right)
    return left - right


def mul(left: Value, right: Value) -> Value:
    _check_operands("*", left, right)
    return left * right


def div(left: Value, right: Value) -> Value:
    _check_operands("/", left, right)
    if right == 0:
        raise FormulaDivisionError()
    if isinstance(left, int) and isinstance(right, int):
        quotient, remainder = divmod(left, right)
        if remainder == 0:
            return quotient
    return left / right


def negate(value: Value) -> Value:
    if not is_number(value):
        raise FormulaTypeError(f"Cannot negate {type_name(value)}")
    return -value


OPERATORS: dict[str, Callable[[Value, Value], Value]] = {
    "+": add,
    "-": sub,
    "*": mul,
    "/": div,
}


def apply_operator(op: str, left: Value, right: Value) -> Value:
    return OPERATORS[op](left, right)


def format_value(value: Value, precision: int = 2) -> str:
    """Render a value for display.

    Whole floats drop their decimals, other floats are shown with
    *precision* decimals, sequences are comma-joined.
    """
    if is_sequence(value):
        return ",".join(format_value(v, precision) for v in value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.{precision}f}"
    return str(value)
