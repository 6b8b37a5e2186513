"""Grid model: rows of cells built from document text.

A cell is one of:

- empty   -- no text; evaluates to ``""``
- literal -- a typed value (``5``, ``3.5``, ``"2022-02-20"``)
- label   -- ``!name``, optionally carrying a literal or an equation;
             a bare label evaluates to its name
- equation -- ``=expr``
- invalid -- text that failed to parse; evaluating it reports the parse error

The grid owns every cell.  Cells refer to each other only by address.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Sequence

from lark import Token, Tree, v_args

from gridcalc.addressing import CellAddress
from gridcalc.formulas.ast import Expression, ExpressionBuilder, transform_tree
from gridcalc.formulas.errors import FormulaParseError
from gridcalc.formulas.parser import parse_cell, split_document
from gridcalc.values import Scalar, coerce_literal


class CellKind(str, Enum):
    empty = "empty"
    literal = "literal"
    label = "label"
    equation = "equation"
    invalid = "invalid"


class Cell:
    """One grid element.

    Attributes:
        address: Where the cell lives.
        raw: The cell's source text.
        kind: See ``CellKind``.
        value: Literal value (literal cells and labels carrying a literal).
        expression: Expression tree (equations and labelled equations).
        label: Label name, for label cells.
        error: Parse error, for invalid cells.
    """

    __slots__ = ("address", "raw", "kind", "value", "expression", "label", "error")

    def __init__(
        self,
        address: CellAddress,
        raw: str,
        kind: CellKind,
        *,
        value: Scalar | None = None,
        expression: Expression | None = None,
        label: str | None = None,
        error: FormulaParseError | None = None,
    ) -> None:
        self.address = address
        self.raw = raw
        self.kind = kind
        self.value = value
        self.expression = expression
        self.label = label
        self.error = error

    @property
    def is_bare_label(self) -> bool:
        """A label with no literal or equation attached."""
        return self.kind is CellKind.label and self.expression is None and self.value is None

    def __repr__(self) -> str:
        return f"Cell({self.address}, {self.kind.value}, {self.raw!r})"


@v_args(inline=True)
class _CellBuilder(ExpressionBuilder):
    """Extends the expression builder with the cell-level rules."""

    def equation(self, expr: Expression) -> dict:
        return {"kind": CellKind.equation, "expression": expr}

    def literal(self, token: Token) -> dict:
        return {"kind": CellKind.literal, "value": coerce_literal(str(token))}

    def label(self, token: Token, content: dict | None = None) -> dict:
        parts = {"kind": CellKind.label, "label": str(token)[1:]}
        if content is not None:
            parts["value"] = content.get("value")
            parts["expression"] = content.get("expression")
        return parts


def build_cell(address: CellAddress, text: str) -> Cell:
    """Parse one cell's text into a ``Cell``.

    Parse errors do not raise; they produce an ``invalid`` cell so the rest
    of the grid still evaluates.
    """
    try:
        tree = parse_cell(text)
        if tree is None:
            return Cell(address, text, CellKind.empty)
        parts = transform_tree(_CellBuilder(), tree)
    except FormulaParseError as exc:
        return Cell(address, text, CellKind.invalid, error=exc)
    except RecursionError:
        return Cell(address, text, CellKind.invalid, error=FormulaParseError("Expression is nested too deeply"))
    if isinstance(parts, Tree):
        # Should be unreachable: every cell-level rule has a builder method.
        return Cell(address, text, CellKind.invalid, error=FormulaParseError(f"Unrecognised cell: {text!r}"))
    kind = parts.pop("kind")
    return Cell(address, text, kind, **parts)


class Grid:
    """Ordered rows of cells, addressed by (column, row number).

    Row numbers are positive and increasing but need not be contiguous;
    "the row above" always means the previous row in document order.
    """

    def __init__(self, rows: Sequence[Sequence[Cell]], row_numbers: Sequence[int] | None = None) -> None:
        numbers = list(row_numbers) if row_numbers is not None else list(range(1, len(rows) + 1))
        if len(numbers) != len(rows):
            raise ValueError("row_numbers must have one entry per row")
        if any(n < 1 for n in numbers) or any(a >= b for a, b in zip(numbers, numbers[1:])):
            raise ValueError(f"Row numbers must be positive and increasing: {numbers}")
        self._rows: list[list[Cell]] = [list(r) for r in rows]
        self._numbers = numbers
        self._position = {n: i for i, n in enumerate(numbers)}
        self._cells: dict[CellAddress, Cell] = {}
        for row in self._rows:
            for cell in row:
                self._cells[cell.address] = cell

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[Sequence[str]],
        row_numbers: Sequence[int] | None = None,
    ) -> Grid:
        """Build a grid from rows of raw cell text."""
        numbers = list(row_numbers) if row_numbers is not None else list(range(1, len(rows) + 1))
        if len(numbers) != len(rows):
            raise ValueError("row_numbers must have one entry per row")
        built = [
            [build_cell(CellAddress(row=number, column=col), text) for col, text in enumerate(row)]
            for number, row in zip(numbers, rows)
        ]
        return cls(built, numbers)

    @classmethod
    def from_text(cls, text: str, delimiter: str = "|") -> Grid:
        """Build a grid from document text (newline-separated rows)."""
        return cls.from_rows(split_document(text, delimiter))

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[list[Cell]]:
        return [list(r) for r in self._rows]

    @property
    def row_numbers(self) -> list[int]:
        return list(self._numbers)

    @property
    def width(self) -> int:
        return max((len(r) for r in self._rows), default=0)

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[Cell]:
        """Cells in row-major document order."""
        for row in self._rows:
            yield from row

    def __contains__(self, addr: object) -> bool:
        return addr in self._cells

    def cell(self, addr: CellAddress) -> Cell | None:
        return self._cells.get(addr)

    def above(self, addr: CellAddress) -> CellAddress | None:
        """Address of the cell one row above *addr* in the same column.

        Returns None on the first row, or when the row above is too short to
        have that column.
        """
        pos = self._position.get(addr.row)
        if pos is None or pos == 0:
            return None
        prev_row = self._rows[pos - 1]
        if addr.column >= len(prev_row):
            return None
        return prev_row[addr.column].address

    def column_above(self, column: int, row: int) -> list[Cell]:
        """Cells of *column* in every row before *row*, top to bottom."""
        cells: list[Cell] = []
        for number, cells_in_row in zip(self._numbers, self._rows):
            if number >= row:
                break
            if column < len(cells_in_row):
                cells.append(cells_in_row[column])
        return cells
