"""Expression tree built from the cell grammar.

The Lark tree is converted once, at grid load, into small immutable nodes
that the dependency builder and the evaluator walk.  Operator chains are
folded left to right here: ``a - b + c`` becomes
``BinaryOp("+", BinaryOp("-", a, b), c)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Union

from lark import Token, Transformer, Tree, v_args
from lark.exceptions import VisitError

from gridcalc.addressing import CellAddress, col_letter_to_index
from gridcalc.formulas.errors import FormulaParseError
from gridcalc.formulas.parser import parse_formula, parse_label_ref


@dataclass(frozen=True)
class Literal:
    value: int | float | str


@dataclass(frozen=True)
class CellRef:
    address: CellAddress


@dataclass(frozen=True)
class ColumnRef:
    """``A^v``: every evaluated value of a column above the current row."""

    column: int


@dataclass(frozen=True)
class CopyEvaluated:
    """``A^``: the value of *column* one row above the current cell."""

    column: int


@dataclass(frozen=True)
class CopyAbove:
    """``^^``: the value of the current cell's own column one row above."""


@dataclass(frozen=True)
class LabelRef:
    name: str
    index: int


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Expression, ...]


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Expression
    right: Expression


@dataclass(frozen=True)
class Negate:
    operand: Expression


Reference = Union[CellRef, ColumnRef, CopyEvaluated, CopyAbove, LabelRef]
Expression = Union[Literal, Reference, FunctionCall, BinaryOp, Negate]

REFERENCE_TYPES = (CellRef, ColumnRef, CopyEvaluated, CopyAbove, LabelRef)


def _column_of(token: Token) -> int:
    letters = str(token).rstrip("^v")
    return col_letter_to_index(letters)


def _parse_number(token: Token) -> int | float:
    """Parse a NUMBER token to int or float."""
    s = str(token)
    if "." in s or "e" in s or "E" in s:
        return float(s)
    return int(s)


@v_args(inline=True)
class ExpressionBuilder(Transformer):
    """Transform expression subtrees of the cell grammar into nodes."""

    def number(self, token: Token) -> Literal:
        return Literal(_parse_number(token))

    def string(self, token: Token) -> Literal:
        raw = str(token)
        return Literal(raw[1:-1].replace('\\"', '"').replace("\\\\", "\\"))

    def cell_ref(self, token: Token) -> CellRef:
        return CellRef(CellAddress.parse(str(token)))

    def column_ref(self, token: Token) -> ColumnRef:
        return ColumnRef(_column_of(token))

    def copy_evaluated(self, token: Token) -> CopyEvaluated:
        return CopyEvaluated(_column_of(token))

    def copy_above(self) -> CopyAbove:
        return CopyAbove()

    def label_ref(self, token: Token) -> LabelRef:
        name, index = parse_label_ref(token)
        return LabelRef(name, index)

    def neg(self, operand: Expression) -> Negate:
        return Negate(operand)

    def op(self, token: Token) -> str:
        return str(token)

    def args(self, *items: Expression) -> tuple[Expression, ...]:
        return items

    def func_call(self, name: Token, args: tuple[Expression, ...]) -> FunctionCall:
        return FunctionCall(str(name), tuple(args))

    def chain(self, first: Expression, *rest: Expression | str) -> Expression:
        result = first
        for i in range(0, len(rest), 2):
            result = BinaryOp(rest[i], result, rest[i + 1])
        return result


def build_expression(tree: Tree) -> Expression:
    """Convert an expression subtree (or an ``equation`` tree) into nodes."""
    if isinstance(tree, Tree) and tree.data == "equation":
        tree = tree.children[0]
    if not isinstance(tree, Tree):
        raise TypeError(f"Expected an expression tree, got {tree!r}")
    return transform_tree(ExpressionBuilder(), tree)


def transform_tree(builder: Transformer, tree: Tree) -> Any:
    """Run *builder* over *tree*, unwrapping errors raised inside callbacks."""
    try:
        return builder.transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, FormulaParseError):
            raise exc.orig_exc from exc
        raise FormulaParseError(str(exc.orig_exc)) from exc


def compile_formula(text: str) -> Expression:
    """Parse and build an equation in one step, e.g. ``compile_formula("=A1+1")``."""
    return build_expression(parse_formula(text))


def child_nodes(node: Expression) -> tuple[Expression, ...]:
    """Direct sub-expressions of *node*, left to right."""
    if isinstance(node, FunctionCall):
        return node.args
    if isinstance(node, BinaryOp):
        return (node.left, node.right)
    if isinstance(node, Negate):
        return (node.operand,)
    return ()


def walk(node: Expression) -> Iterator[Expression]:
    """Yield *node* and every sub-expression in pre-order, left to right.

    Uses an explicit stack, so long operator chains (which fold into deep
    left-leaning trees) do not hit the interpreter's recursion limit.
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(child_nodes(current)))


def iter_references(node: Expression) -> Iterator[Reference]:
    """Yield every reference in *node*, left to right.

    Function arguments and operator operands are walked; literals are not.
    """
    for sub in walk(node):
        if isinstance(sub, REFERENCE_TYPES):
            yield sub


def iter_function_names(node: Expression) -> Iterator[str]:
    """Yield the name of every function called in *node*."""
    for sub in walk(node):
        if isinstance(sub, FunctionCall):
            yield sub.name
