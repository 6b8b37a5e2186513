"""Evaluation engine: one pass over a grid, producing a ``ResultTable``.

A run goes through four stages:

1. Labels are registered and frozen.
2. Every equation's references are resolved into dependency edges.
3. The graph is scheduled; cycles are isolated as strongly connected
   components.
4. Cells are evaluated in schedule order.  Each cell's failure is
   recorded against its address and propagates only to its dependents.

Evaluating the same grid twice yields identical result tables.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any

from gridcalc.addressing import CellAddress
from gridcalc.formulas.errors import (
    ENGINE_ERRORS,
    CircularReferenceError,
    FormulaDivisionError,
    FormulaError,
    FormulaTypeError,
    IncompleteError,
    PropagatedFailureError,
    SchedulingError,
)
from gridcalc.formulas.evaluator import evaluate_expression
from gridcalc.formulas.resolver import ReferenceResolver
from gridcalc.functions import FunctionRegistry, default_registry
from gridcalc.graph import DependencyGraph, Schedule, schedule
from gridcalc.grid import Cell, CellKind, Grid
from gridcalc.labels import LabelRegistry
from gridcalc.logging.events import (
    CELL_EVAL_ERROR,
    CELL_PARSE_ERROR,
    CIRCULAR_REFERENCE,
    DEADLINE_EXCEEDED,
    ENGINE_FAILURE,
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_run_event,
)
from gridcalc.results import CellState, ResultTable
from gridcalc.values import Value


def new_run_id() -> str:
    """Timestamped run id, unique per evaluation: ``YYYYMMDD_HHMMSS_<hex8>``."""
    now = datetime.now(timezone.utc)
    return f"{now:%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


def _as_formula_error(exc: BaseException) -> FormulaError:
    if isinstance(exc, FormulaError):
        return exc
    if isinstance(exc, ZeroDivisionError):
        return FormulaDivisionError()
    if isinstance(exc, RecursionError):
        return FormulaTypeError("Expression is nested too deeply to evaluate")
    return FormulaTypeError(f"Numeric overflow: {exc}")


class Engine:
    """Evaluates every cell of a grid.

    Args:
        grid: The parsed grid.
        functions: Function registry; defaults to a copy of the built-ins.
        deadline_seconds: Wall-clock budget for the run.  Cells not reached
            in time are recorded as ``Incomplete``.  ``None`` means no limit.
        source: Name of the document, recorded in log events.
    """

    def __init__(
        self,
        grid: Grid,
        functions: FunctionRegistry | None = None,
        *,
        deadline_seconds: float | None = None,
        source: str | None = None,
    ) -> None:
        if deadline_seconds is not None and deadline_seconds < 0:
            raise ValueError(f"deadline_seconds must be non-negative, got {deadline_seconds}")
        self.grid = grid
        self.functions = functions if functions is not None else default_registry()
        self.deadline_seconds = deadline_seconds
        self.source = source
        self.labels = LabelRegistry.from_grid(grid)
        self.resolver = ReferenceResolver(grid, self.labels)
        self.graph = DependencyGraph.build(grid, self.resolver)
        self.schedule: Schedule = schedule(self.graph)
        self.last_run_id: str | None = None

    @classmethod
    def from_text(cls, text: str, delimiter: str = "|", **kwargs: Any) -> Engine:
        return cls(Grid.from_text(text, delimiter), **kwargs)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def evaluate(self, *, run_id: str | None = None) -> ResultTable:
        """Evaluate every cell and return the populated result table.

        Per-cell failures never raise; they are recorded in the table.
        ``SchedulingError`` is raised only if the evaluation order is broken.
        """
        run_id = run_id or new_run_id()
        self.last_run_id = run_id
        results = ResultTable(self.grid)

        emit(
            make_run_event(
                EventType.eval_started,
                EventLevel.info,
                f"Evaluation started: {len(self.grid)} cells",
                run_id=run_id,
                source=self.source,
                extra={
                    "cell_count": len(self.grid),
                    "edge_count": self.graph.edge_count(),
                    "deadline_seconds": self.deadline_seconds,
                },
            ),
            run_id=run_id,
        )
        for cycle in self.schedule.cycles:
            emit_warning(
                EventType.cycle_detected,
                f"Circular reference: {', '.join(str(a) for a in cycle)}",
                self._context(run_id, cycle=[str(a) for a in cycle]),
                error_code=CIRCULAR_REFERENCE,
                run_id=run_id,
            )

        t0 = time.monotonic()
        try:
            stopped_at = self._run(results, t0)
        except SchedulingError as exc:
            emit_error(
                EventType.eval_failed,
                f"Evaluation failed: {exc}",
                self._context(run_id, error=str(exc)),
                error_code=ENGINE_FAILURE,
                run_id=run_id,
            )
            raise
        elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

        self._emit_cell_failures(results, run_id)
        if stopped_at is not None:
            emit(
                make_run_event(
                    EventType.eval_incomplete,
                    EventLevel.warning,
                    f"Deadline of {self.deadline_seconds}s expired at {stopped_at}",
                    run_id=run_id,
                    source=self.source,
                    error_code=DEADLINE_EXCEEDED,
                    extra={
                        "stopped_at": str(stopped_at),
                        "incomplete_count": results.count(CellState.incomplete),
                    },
                ),
                run_id=run_id,
            )
        emit_info(
            EventType.eval_timing,
            f"Evaluation took {elapsed_ms} ms",
            {"run_id": run_id, "timings_ms": {"evaluate": elapsed_ms}},
            run_id=run_id,
        )
        emit(
            make_run_event(
                EventType.eval_completed,
                EventLevel.info,
                f"Evaluation completed: {run_id}",
                run_id=run_id,
                source=self.source,
                extra={
                    "evaluated": results.count(CellState.evaluated),
                    "failed": results.count(CellState.failed),
                    "incomplete": results.count(CellState.incomplete),
                },
            ),
            run_id=run_id,
        )
        return results

    def _context(self, run_id: str, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"run_id": run_id}
        if self.source is not None:
            ctx["source"] = self.source
        ctx.update(extra)
        return ctx

    def _run(self, results: ResultTable, t0: float) -> CellAddress | None:
        """Evaluate in schedule order; return the first address cut off by the deadline."""
        deadline_at = None if self.deadline_seconds is None else t0 + self.deadline_seconds
        order = self.schedule.order

        for i, addr in enumerate(order):
            if deadline_at is not None and time.monotonic() >= deadline_at:
                for remaining in order[i:]:
                    results.record_incomplete(remaining, IncompleteError(self.deadline_seconds))
                return addr

            results.begin(addr)
            try:
                value = self._evaluate_cell(addr, results)
            except ENGINE_ERRORS as exc:
                results.record_error(addr, _as_formula_error(exc))
            else:
                results.record_value(addr, value)
        return None

    def _evaluate_cell(self, addr: CellAddress, results: ResultTable) -> Value:
        cycle = self.schedule.cycle_of(addr)
        if cycle is not None:
            raise CircularReferenceError(cycle)

        for dep in sorted(self.graph.dependencies_of(addr)):
            state = results.state(dep)
            if state in (CellState.failed, CellState.incomplete):
                raise PropagatedFailureError(results.root_cause(dep))
            if state is not CellState.evaluated:
                raise SchedulingError(f"Cell {addr} scheduled before its dependency {dep}")

        cell = self.grid.cell(addr)
        if cell is None:
            raise SchedulingError(f"Scheduled address {addr} is not in the grid")
        return self._cell_value(cell, results)

    def _cell_value(self, cell: Cell, results: ResultTable) -> Value:
        if cell.kind is CellKind.empty:
            return ""
        if cell.kind is CellKind.invalid:
            raise cell.error
        if cell.expression is not None:
            return evaluate_expression(
                cell.expression, cell.address, self.resolver, results, self.functions
            )
        if cell.is_bare_label:
            return cell.label
        return cell.value

    def _emit_cell_failures(self, results: ResultTable, run_id: str) -> None:
        """One event per root failure; propagated and cycle failures are summarised elsewhere."""
        for addr in results.failed():
            err = results.error(addr)
            if err is None or err.root_cause is not None or err.cycle:
                continue
            cell = self.grid.cell(addr)
            code = CELL_PARSE_ERROR if cell is not None and cell.kind is CellKind.invalid else CELL_EVAL_ERROR
            emit(
                make_run_event(
                    EventType.cell_failed,
                    EventLevel.warning,
                    f"{addr}: {err.message}",
                    run_id=run_id,
                    source=self.source,
                    error_code=code,
                    extra={
                        "address": str(addr),
                        "kind": err.kind.value,
                        "text": cell.raw if cell is not None else "",
                    },
                ),
                run_id=run_id,
            )


def evaluate_grid(grid: Grid, **kwargs: Any) -> ResultTable:
    """Evaluate *grid* with a fresh engine."""
    return Engine(grid, **kwargs).evaluate()


def evaluate_text(text: str, delimiter: str = "|", **kwargs: Any) -> ResultTable:
    """Parse document text and evaluate it."""
    return Engine.from_text(text, delimiter, **kwargs).evaluate()
