"""Built-in functions.

Names are case-insensitive (``sum`` and ``SUM`` are the same function).
Aggregates are variadic and see whole-column sequences flattened into
their argument list.  Comparison functions return ``"true"``/``"false"``.
"""

from __future__ import annotations

from functools import reduce

from gridcalc.formulas.errors import FormulaDivisionError, FormulaTypeError
from gridcalc.functions.registry import VARIADIC, FunctionRegistry
from gridcalc.values import Value, add, coerce_literal, div, format_value, is_number, is_sequence, type_name

BUILTINS = FunctionRegistry()


def default_registry() -> FunctionRegistry:
    """A fresh copy of the built-in functions, safe to extend."""
    return BUILTINS.copy()


def _numbers(name: str, args: list[Value]) -> list[int | float]:
    for a in args:
        if not is_number(a):
            raise FormulaTypeError(f"{name} expects numbers, got {type_name(a)} {a!r}")
    return list(args)


def _text(name: str, value: Value) -> str:
    if not isinstance(value, str):
        raise FormulaTypeError(f"{name} expects a string, got {type_name(value)}")
    return value


# ---------- Aggregates ----------


@BUILTINS.register("SUM", VARIADIC)
def fn_sum(args: list[Value]) -> Value:
    """Sum of the arguments; 0 for no arguments."""
    return reduce(add, _numbers("SUM", args), 0)


@BUILTINS.register("AVG", VARIADIC)
def fn_avg(args: list[Value]) -> Value:
    """Arithmetic mean; fails with DivisionByZero for no arguments."""
    nums = _numbers("AVG", args)
    if not nums:
        raise FormulaDivisionError("AVG of an empty sequence")
    return div(reduce(add, nums, 0), len(nums))


@BUILTINS.register("MIN", VARIADIC)
def fn_min(args: list[Value]) -> Value:
    """Smallest argument."""
    nums = _numbers("MIN", args)
    if not nums:
        raise FormulaTypeError("MIN of an empty sequence")
    return min(nums)


@BUILTINS.register("MAX", VARIADIC)
def fn_max(args: list[Value]) -> Value:
    """Largest argument."""
    nums = _numbers("MAX", args)
    if not nums:
        raise FormulaTypeError("MAX of an empty sequence")
    return max(nums)


@BUILTINS.register("COUNT", VARIADIC)
def fn_count(args: list[Value]) -> Value:
    """Number of values."""
    return len(args)


# ---------- Scalar math ----------


@BUILTINS.register("ABS", 1)
def fn_abs(args: list[Value]) -> Value:
    """Absolute value."""
    return abs(_numbers("ABS", args)[0])


@BUILTINS.register("ROUND", VARIADIC, min_args=1, max_args=2)
def fn_round(args: list[Value]) -> Value:
    """ROUND(x[, digits]) to *digits* decimals (default 0)."""
    nums = _numbers("ROUND", args)
    digits = int(nums[1]) if len(nums) == 2 else 0
    return round(nums[0], digits)


# ---------- Text ----------


@BUILTINS.register("CONCAT", VARIADIC)
def fn_concat(args: list[Value]) -> Value:
    """Concatenate the display text of every argument."""
    return "".join(format_value(a) for a in args)


@BUILTINS.register("TEXT", 1)
def fn_text(args: list[Value]) -> Value:
    """Display text of a value."""
    return format_value(args[0])


@BUILTINS.register("SPLIT", 2)
def fn_split(args: list[Value]) -> Value:
    """SPLIT(text, delimiter) into a sequence of typed literals."""
    text = _text("SPLIT", args[0])
    delim = _text("SPLIT", args[1])
    if not delim:
        raise FormulaTypeError("SPLIT delimiter must not be empty")
    return tuple(coerce_literal(part) for part in text.split(delim))


@BUILTINS.register("SPREAD", 1)
def fn_spread(args: list[Value]) -> Value:
    """Pass a sequence through so it expands into the enclosing call."""
    if not is_sequence(args[0]):
        raise FormulaTypeError(f"SPREAD expects a sequence, got {type_name(args[0])}")
    return args[0]


# ---------- Comparison ----------


@BUILTINS.register("GTE", 2)
def fn_gte(args: list[Value]) -> Value:
    """GTE(a, b): a >= b."""
    a, b = _numbers("GTE", args)
    return a >= b


# ``bte`` is an accepted spelling of GTE.
BUILTINS.add("BTE", fn_gte, 2)


@BUILTINS.register("LTE", 2)
def fn_lte(args: list[Value]) -> Value:
    """LTE(a, b): a <= b."""
    a, b = _numbers("LTE", args)
    return a <= b


# ---------- Counters ----------


@BUILTINS.register("INCFROM", 1)
def fn_incfrom(args: list[Value]) -> Value:
    """INCFROM(start): numeric start of a counter; numeric text is coerced."""
    start = args[0]
    if isinstance(start, str):
        start = coerce_literal(start)
    return _numbers("INCFROM", [start])[0]
