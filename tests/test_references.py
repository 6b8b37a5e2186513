"""Tests for the label registry and the reference resolver."""

from __future__ import annotations

import pytest

from gridcalc.addressing import CellAddress
from gridcalc.formulas import CellRef, ColumnRef, CopyAbove, CopyEvaluated, LabelRef, compile_formula
from gridcalc.formulas.errors import (
    ErrorKind,
    FormulaRefError,
    LabelIndexError,
    NoCellAboveError,
    UnknownLabelError,
)
from gridcalc.formulas.resolver import ReferenceResolver, contributes_to_column
from gridcalc.grid import Grid
from gridcalc.labels import LabelRegistry


def _addr(text: str) -> CellAddress:
    return CellAddress.parse(text)


def _resolver(text: str) -> ReferenceResolver:
    grid = Grid.from_text(text)
    return ReferenceResolver(grid, LabelRegistry.from_grid(grid))


# ────────────────────────────────────────────────────────────────
# Label registry
# ────────────────────────────────────────────────────────────────


class TestLabelRegistry:
    def test_occurrences_in_document_order(self) -> None:
        grid = Grid.from_text("!base 1 | !other\n5 | !base =A2*2\n!base")
        labels = LabelRegistry.from_grid(grid)
        assert labels.occurrences("base") == (_addr("A1"), _addr("B2"), _addr("A3"))
        assert labels.names() == ["base", "other"]
        assert len(labels) == 4
        assert "other" in labels

    def test_zero_based_index(self) -> None:
        labels = LabelRegistry.from_grid(Grid.from_text("!base 1\n!base 2"))
        assert labels.resolve("base", 0) == _addr("A1")
        assert labels.resolve("base", 1) == _addr("A2")

    def test_unknown_label(self) -> None:
        labels = LabelRegistry.from_grid(Grid.from_text("!base 1"))
        with pytest.raises(UnknownLabelError) as exc_info:
            labels.resolve("missing", 0)
        assert exc_info.value.kind is ErrorKind.unknown_label
        assert exc_info.value.available == ["base"]

    def test_index_out_of_range(self) -> None:
        labels = LabelRegistry.from_grid(Grid.from_text("!base 5"))
        with pytest.raises(LabelIndexError) as exc_info:
            labels.resolve("base", 1)
        assert exc_info.value.kind is ErrorKind.label_index_out_of_range
        assert exc_info.value.count == 1

    def test_read_only_after_build(self) -> None:
        labels = LabelRegistry.from_grid(Grid.from_text("!base 5"))
        with pytest.raises(RuntimeError):
            labels.register("late", _addr("B1"))

    def test_fresh_registry_per_grid(self) -> None:
        a = LabelRegistry.from_grid(Grid.from_text("!x 1"))
        b = LabelRegistry.from_grid(Grid.from_text("!y 1"))
        assert "x" not in b
        assert "y" not in a


# ────────────────────────────────────────────────────────────────
# Resolver
# ────────────────────────────────────────────────────────────────


class TestReferenceResolver:
    def test_cell_reference(self) -> None:
        r = _resolver("1|2")
        assert r.resolve(CellRef(_addr("B1")), _addr("A1")) == _addr("B1")

    def test_cell_reference_outside_grid(self) -> None:
        r = _resolver("1|2")
        with pytest.raises(FormulaRefError) as exc_info:
            r.resolve(CellRef(_addr("Z99")), _addr("A1"))
        assert exc_info.value.kind is ErrorKind.invalid_reference

    def test_copy_above_on_first_row(self) -> None:
        r = _resolver("=^^")
        with pytest.raises(NoCellAboveError) as exc_info:
            r.resolve(CopyAbove(), _addr("A1"))
        assert exc_info.value.kind is ErrorKind.no_cell_above

    def test_copy_above(self) -> None:
        r = _resolver("1|2\n3|=^^")
        assert r.resolve(CopyAbove(), _addr("B2")) == _addr("B1")

    def test_copy_evaluated_other_column(self) -> None:
        r = _resolver("1|2\n=B^|3")
        assert r.resolve(CopyEvaluated(1), _addr("A2")) == _addr("B1")

    def test_copy_evaluated_short_row_above(self) -> None:
        r = _resolver("1\n2|=B^")
        with pytest.raises(NoCellAboveError):
            r.resolve(CopyEvaluated(1), _addr("B2"))

    def test_label_reference(self) -> None:
        r = _resolver("!base 5|1\n2|!base 7")
        assert r.resolve(LabelRef("base", 1), _addr("A1")) == _addr("B2")

    def test_label_reference_is_position_independent(self) -> None:
        r = _resolver("1|2|3\n!base 5|4|5\n6|7|8")
        targets = {r.resolve(LabelRef("base", 0), _addr(a)) for a in ("A1", "C1", "B3", "C3")}
        assert targets == {_addr("A2")}

    def test_column_range_skips_empty_and_bare_labels(self) -> None:
        r = _resolver("!amount\n1\n\n2\n=A^v")
        assert r.resolve_range(ColumnRef(0), _addr("A5")) == [_addr("A2"), _addr("A4")]

    def test_column_range_on_first_row_is_empty(self) -> None:
        r = _resolver("=SUM(A^v)")
        assert r.resolve_range(ColumnRef(0), _addr("A1")) == []

    def test_column_range_excludes_current_row(self) -> None:
        r = _resolver("1|x\n2|=SUM(A^v)\n3|y")
        assert r.resolve_range(ColumnRef(0), _addr("B2")) == [_addr("A1")]

    def test_dependencies_ignore_unresolvable(self) -> None:
        r = _resolver("1|2\n=A1 + ^^ + @nope<0> + Z9|3")
        expr = compile_formula("=A1 + ^^ + @nope<0> + Z9")
        assert r.dependencies(expr, _addr("A2")) == {_addr("A1")}

    def test_contributes_to_column(self) -> None:
        grid = Grid.from_text("!h | | 1 | !l 2")
        flags = [contributes_to_column(c) for c in grid]
        assert flags == [False, False, True, True]
