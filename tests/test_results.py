"""Tests for the result table: write-once states, snapshots and rendering."""

from __future__ import annotations

import polars as pl
import pytest

from gridcalc import CellAddress, CellState, Grid, evaluate_text
from gridcalc.formulas.errors import FormulaDivisionError, SchedulingError
from gridcalc.results import CellError, ResultTable

A1 = CellAddress(row=1, column=0)
B1 = CellAddress(row=1, column=1)


@pytest.fixture
def table() -> ResultTable:
    return ResultTable(Grid.from_text("1 | =A1"))


class TestCellStates:
    def test_starts_unevaluated(self, table: ResultTable) -> None:
        assert table.state(A1) is CellState.unevaluated
        assert table.count(CellState.unevaluated) == 2

    def test_lifecycle(self, table: ResultTable) -> None:
        table.begin(A1)
        assert table.state(A1) is CellState.evaluating
        table.record_value(A1, 1)
        assert table.state("A1") is CellState.evaluated
        assert table.value("A1") == 1

    def test_final_state_is_write_once(self, table: ResultTable) -> None:
        table.begin(A1)
        table.record_value(A1, 1)
        with pytest.raises(SchedulingError):
            table.record_value(A1, 2)
        with pytest.raises(SchedulingError):
            table.record_error(A1, FormulaDivisionError())

    def test_begin_twice(self, table: ResultTable) -> None:
        table.begin(A1)
        with pytest.raises(SchedulingError):
            table.begin(A1)

    def test_reading_unsettled_dependency(self, table: ResultTable) -> None:
        with pytest.raises(SchedulingError):
            table.dependency_value(A1)

    def test_failed_dependency_names_root(self, table: ResultTable) -> None:
        from gridcalc.formulas.errors import PropagatedFailureError

        table.begin(A1)
        table.record_error(A1, FormulaDivisionError())
        with pytest.raises(PropagatedFailureError) as exc_info:
            table.dependency_value(A1)
        assert exc_info.value.root_cause == A1

    def test_failed_cells(self) -> None:
        r = evaluate_text("=1/0 | 2 | =A1")
        assert [str(a) for a in r.failed()] == ["A1", "C1"]


class TestSnapshot:
    def test_snapshot_is_read_only(self) -> None:
        snap = evaluate_text("1 | 2").snapshot()
        with pytest.raises(TypeError):
            snap[A1] = None  # type: ignore[index]

    def test_snapshot_covers_every_cell(self) -> None:
        r = evaluate_text("1 | =1/0\n | !x")
        snap = r.snapshot()
        assert list(snap) == [A1, B1, CellAddress(2, 0), CellAddress(2, 1)]
        assert snap[A1].ok
        assert not snap[B1].ok

    def test_outcome(self) -> None:
        out = evaluate_text("=1/0").outcome("A1")
        assert out.address == "A1"
        assert out.state is CellState.failed
        assert out.value is None
        assert out.error == CellError(kind="DivisionByZero", message="Division by zero")

    def test_to_dict(self) -> None:
        d = evaluate_text("2 | =A1 / 0 | =B1 | =SPLIT(\"1,2\", \",\")").to_dict()
        assert d["A1"] == {"state": "evaluated", "value": 2, "error": None}
        assert d["B1"]["error"]["kind"] == "DivisionByZero"
        assert d["C1"]["error"]["root_cause"] == "B1"
        assert d["D1"]["value"] == [1, 2]


class TestRendering:
    def test_render_pads_columns(self) -> None:
        r = evaluate_text("1 | =A1 * 2.5\nabc | !x")
        assert r.render() == "1   | 2.50\nabc | x   "

    def test_render_custom_separator_and_precision(self) -> None:
        r = evaluate_text("=1 / 3 | 2")
        assert r.render(separator=",", precision=3) == "0.333,2"

    def test_errors_render_as_kind(self) -> None:
        r = evaluate_text("=1 / 0")
        assert r.display("A1") == "#DivisionByZero!"

    def test_short_rows(self) -> None:
        r = evaluate_text("1 | 2\n3")
        assert r.display_rows() == [["1", "2"], ["3"]]

    def test_to_frame(self) -> None:
        df = evaluate_text("1 | =A1 + 0.5\n=^^ * 2").to_frame()
        assert isinstance(df, pl.DataFrame)
        assert df.columns == ["A", "B"]
        assert df["A"].to_list() == ["1", "2"]
        assert df["B"].to_list() == ["1.50", None]
        assert df.schema["A"] == pl.Utf8

    def test_to_frame_empty(self) -> None:
        df = evaluate_text("").to_frame()
        assert df.shape == (0, 0)
