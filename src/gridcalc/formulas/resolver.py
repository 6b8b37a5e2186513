"""Resolve reference nodes to grid addresses.

Resolution depends on the address of the cell being evaluated: look-back
forms (``A^``, ``^^``) and whole-column references (``A^v``) are relative
to it.  The resolver is used twice with identical results: once by the
dependency builder to find edges, and once by the evaluator to read values.
"""

from __future__ import annotations

from typing import Protocol

from gridcalc.addressing import CellAddress
from gridcalc.formulas.ast import (
    CellRef,
    ColumnRef,
    CopyAbove,
    CopyEvaluated,
    Expression,
    LabelRef,
    Reference,
    iter_references,
)
from gridcalc.formulas.errors import FormulaError, FormulaRefError, NoCellAboveError
from gridcalc.grid import Cell, CellKind, Grid
from gridcalc.labels import LabelRegistry


class CellResolver(Protocol):
    """Protocol for mapping references onto grid addresses."""

    def resolve(self, ref: Reference, current: CellAddress) -> CellAddress:
        """Resolve a single-cell reference."""
        ...

    def resolve_range(self, ref: ColumnRef, current: CellAddress) -> list[CellAddress]:
        """Resolve a whole-column reference to an ordered list of addresses."""
        ...


def contributes_to_column(cell: Cell) -> bool:
    """Whether a cell's value belongs in a whole-column sequence.

    Empty cells and bare labels (column headers) are skipped.
    """
    return cell.kind is not CellKind.empty and not cell.is_bare_label


class ReferenceResolver:
    """Resolves references against one grid and its label registry."""

    def __init__(self, grid: Grid, labels: LabelRegistry) -> None:
        self.grid = grid
        self.labels = labels

    def resolve(self, ref: Reference, current: CellAddress) -> CellAddress:
        """Resolve a single-cell reference.

        Raises:
            FormulaRefError: Cell reference outside the grid.
            NoCellAboveError: Look-back from the first row (or a short row above).
            UnknownLabelError, LabelIndexError: Bad label reference.
        """
        if isinstance(ref, CellRef):
            if ref.address not in self.grid:
                raise FormulaRefError(str(ref.address))
            return ref.address
        if isinstance(ref, CopyEvaluated):
            above = self.grid.above(CellAddress(row=current.row, column=ref.column))
            if above is None:
                raise NoCellAboveError(current)
            return above
        if isinstance(ref, CopyAbove):
            above = self.grid.above(current)
            if above is None:
                raise NoCellAboveError(current)
            return above
        if isinstance(ref, LabelRef):
            return self.labels.resolve(ref.name, ref.index)
        raise TypeError(f"Not a single-cell reference: {ref!r}")

    def resolve_range(self, ref: ColumnRef, current: CellAddress) -> list[CellAddress]:
        """Addresses of the contributing cells of a column above *current*.

        An empty list (first row, or nothing above) is valid.
        """
        return [
            cell.address
            for cell in self.grid.column_above(ref.column, current.row)
            if contributes_to_column(cell)
        ]

    def targets(self, ref: Reference, current: CellAddress) -> list[CellAddress]:
        """Every address a reference reads, as a list."""
        if isinstance(ref, ColumnRef):
            return self.resolve_range(ref, current)
        return [self.resolve(ref, current)]

    def dependencies(self, expr: Expression, current: CellAddress) -> set[CellAddress]:
        """All addresses *expr* reads when evaluated at *current*.

        References that cannot be resolved contribute nothing; evaluating
        them reports the error against the cell.
        """
        deps: set[CellAddress] = set()
        for ref in iter_references(expr):
            try:
                deps.update(self.targets(ref, current))
            except FormulaError:
                continue
        return deps
