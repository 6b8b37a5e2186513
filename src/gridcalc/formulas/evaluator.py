"""Tree-walking evaluator for expression trees.

Evaluates one cell's expression against values already in the result
table.  The engine guarantees (via the schedule) that every cell an
expression reads has been settled before the expression runs; reading an
unsettled cell raises ``SchedulingError``.
"""

from __future__ import annotations

from typing import Protocol

from gridcalc.addressing import CellAddress
from gridcalc.formulas.ast import (
    BinaryOp,
    ColumnRef,
    Expression,
    FunctionCall,
    Literal,
    Negate,
    REFERENCE_TYPES,
    child_nodes,
)
from gridcalc.formulas.errors import FormulaError
from gridcalc.formulas.resolver import CellResolver
from gridcalc.functions.registry import FunctionRegistry
from gridcalc.values import Value, apply_operator, negate


class ValueSource(Protocol):
    """Where the evaluator reads settled cell values from."""

    def dependency_value(self, addr: CellAddress) -> Value:
        """Value of an evaluated cell (raises if it failed or is unsettled)."""
        ...


def evaluate_expression(
    node: Expression,
    current: CellAddress,
    resolver: CellResolver,
    values: ValueSource,
    functions: FunctionRegistry,
) -> Value:
    """Evaluate an expression tree in the context of the cell at *current*.

    Args:
        node: Expression tree from ``build_expression()``.
        current: Address of the cell being evaluated.
        resolver: Maps references to addresses.
        values: Settled values of other cells.
        functions: Registry used for function calls.

    Returns:
        The computed value.
    """
    return _eval(node, current, resolver, values, functions)


def _eval(
    node: Expression,
    cur: CellAddress,
    resolver: CellResolver,
    values: ValueSource,
    fns: FunctionRegistry,
) -> Value:
    # Explicit work stack: (node, operands_ready).  Operands are pushed
    # right to left so the left operand is evaluated first.
    work: list[tuple[Expression, bool]] = [(node, False)]
    out: list[Value] = []

    while work:
        item, ready = work.pop()

        if ready:
            if isinstance(item, BinaryOp):
                right = out.pop()
                left = out.pop()
                out.append(apply_operator(item.op, left, right))
            elif isinstance(item, Negate):
                out.append(negate(out.pop()))
            elif isinstance(item, FunctionCall):
                start = len(out) - len(item.args)
                args = out[start:]
                del out[start:]
                out.append(fns.call(item.name, args))
            continue

        if isinstance(item, Literal):
            out.append(item.value)

        elif isinstance(item, (BinaryOp, Negate, FunctionCall)):
            work.append((item, True))
            work.extend((child, False) for child in reversed(child_nodes(item)))

        # Whole-column reference: a sequence of the values above
        elif isinstance(item, ColumnRef):
            out.append(tuple(
                values.dependency_value(addr) for addr in resolver.resolve_range(item, cur)
            ))

        elif isinstance(item, REFERENCE_TYPES):
            out.append(values.dependency_value(resolver.resolve(item, cur)))

        else:
            raise FormulaError(f"Unknown node type: {type(item).__name__}")

    return out[0]
