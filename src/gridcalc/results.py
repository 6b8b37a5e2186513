"""Result table: the outcome of every cell in one evaluation run.

Each cell moves through ``unevaluated -> evaluating -> evaluated | failed``
(or ``incomplete`` when a deadline stops the run).  A final state is written
exactly once; a second write raises.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import polars as pl
from pydantic import BaseModel, ConfigDict, Field

from gridcalc.addressing import CellAddress, index_to_col_letter
from gridcalc.formulas.errors import (
    CircularReferenceError,
    ErrorKind,
    FormulaError,
    PropagatedFailureError,
    SchedulingError,
)
from gridcalc.grid import Grid
from gridcalc.values import Value, format_value


class CellState(str, Enum):
    unevaluated = "unevaluated"
    evaluating = "evaluating"
    evaluated = "evaluated"
    failed = "failed"
    incomplete = "incomplete"


_FINAL_STATES = frozenset({CellState.evaluated, CellState.failed, CellState.incomplete})


class CellError(BaseModel):
    """Error record stored against a failed or incomplete cell."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    root_cause: str | None = None
    cycle: list[str] = Field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: FormulaError) -> CellError:
        root = None
        cycle: list[str] = []
        if isinstance(exc, PropagatedFailureError):
            root = str(exc.root_cause)
        if isinstance(exc, CircularReferenceError):
            cycle = [str(a) for a in exc.cycle]
        return cls(kind=exc.kind, message=str(exc), root_cause=root, cycle=cycle)


class CellOutcome(BaseModel):
    """Final state of one cell: a value or an error."""

    model_config = ConfigDict(frozen=True)

    address: str
    state: CellState
    value: Any = None
    error: CellError | None = None

    @property
    def ok(self) -> bool:
        return self.state is CellState.evaluated


def _key(addr: CellAddress | str) -> CellAddress:
    if isinstance(addr, CellAddress):
        return addr
    return CellAddress.parse(addr)


class ResultTable:
    """Mapping from cell address to its evaluated value or error.

    Created empty (every cell ``unevaluated``) for each run and populated
    monotonically by the engine.
    """

    def __init__(self, grid: Grid) -> None:
        self.grid = grid
        self._states: dict[CellAddress, CellState] = {
            cell.address: CellState.unevaluated for cell in grid
        }
        self._values: dict[CellAddress, Value] = {}
        self._errors: dict[CellAddress, CellError] = {}

    # ------------------------------------------------------------------
    # Writes (engine only)
    # ------------------------------------------------------------------

    def begin(self, addr: CellAddress) -> None:
        state = self._states[addr]
        if state is not CellState.unevaluated:
            raise SchedulingError(f"Cell {addr} is already {state.value}")
        self._states[addr] = CellState.evaluating

    def _settle(self, addr: CellAddress, state: CellState) -> None:
        current = self._states[addr]
        if current in _FINAL_STATES:
            raise SchedulingError(f"Cell {addr} is already {current.value}")
        self._states[addr] = state

    def record_value(self, addr: CellAddress, value: Value) -> None:
        self._settle(addr, CellState.evaluated)
        self._values[addr] = value

    def record_error(self, addr: CellAddress, exc: FormulaError) -> None:
        self._settle(addr, CellState.failed)
        self._errors[addr] = CellError.from_exception(exc)

    def record_incomplete(self, addr: CellAddress, exc: FormulaError) -> None:
        self._settle(addr, CellState.incomplete)
        self._errors[addr] = CellError.from_exception(exc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def state(self, addr: CellAddress | str) -> CellState:
        return self._states[_key(addr)]

    def value(self, addr: CellAddress | str) -> Value | None:
        """The cell's value, or None if it did not evaluate."""
        return self._values.get(_key(addr))

    def error(self, addr: CellAddress | str) -> CellError | None:
        return self._errors.get(_key(addr))

    def dependency_value(self, addr: CellAddress) -> Value:
        """Value of a dependency the evaluator is about to read.

        Raises:
            PropagatedFailureError: The dependency failed.
            SchedulingError: The dependency has not been evaluated yet.
        """
        state = self._states.get(addr)
        if state is CellState.evaluated:
            return self._values[addr]
        if state in (CellState.failed, CellState.incomplete):
            raise PropagatedFailureError(self.root_cause(addr))
        raise SchedulingError(f"Cell {addr} read before evaluation (state {state})")

    def root_cause(self, addr: CellAddress) -> CellAddress:
        """The cell where a failure chain through *addr* started."""
        err = self._errors.get(addr)
        if err is not None and err.root_cause is not None:
            return CellAddress.parse(err.root_cause)
        return addr

    def outcome(self, addr: CellAddress | str) -> CellOutcome:
        key = _key(addr)
        return CellOutcome(
            address=str(key),
            state=self._states[key],
            value=self._values.get(key),
            error=self._errors.get(key),
        )

    def __iter__(self) -> Iterator[CellAddress]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)

    def failed(self) -> list[CellAddress]:
        return [a for a, s in self._states.items() if s is CellState.failed]

    def count(self, state: CellState) -> int:
        return sum(1 for s in self._states.values() if s is state)

    def snapshot(self) -> Mapping[CellAddress, CellOutcome]:
        """Read-only view of every cell's outcome, in document order."""
        return MappingProxyType({addr: self.outcome(addr) for addr in self._states})

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """JSON-ready outcomes keyed by A1 address."""
        return {
            str(addr): outcome.model_dump(mode="json", exclude={"address"})
            for addr, outcome in self.snapshot().items()
        }

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def display(self, addr: CellAddress | str, precision: int = 2) -> str:
        """Display text for a cell: its value, or ``#Kind!`` on error."""
        key = _key(addr)
        state = self._states[key]
        if state is CellState.evaluated:
            return format_value(self._values[key], precision)
        err = self._errors.get(key)
        if err is not None:
            return f"#{err.kind.value}!"
        return ""

    def display_rows(self, precision: int = 2) -> list[list[str]]:
        return [
            [self.display(cell.address, precision) for cell in row]
            for row in self.grid.rows
        ]

    def render(self, separator: str = " | ", precision: int = 2) -> str:
        """Render the evaluated grid as aligned text, one line per row."""
        rows = self.display_rows(precision)
        widths: dict[int, int] = {}
        for row in rows:
            for col, text in enumerate(row):
                widths[col] = max(widths.get(col, 0), len(text))
        lines = []
        for row in rows:
            lines.append(separator.join(text.ljust(widths[col]) for col, text in enumerate(row)))
        return "\n".join(lines)

    def to_frame(self, precision: int = 2) -> pl.DataFrame:
        """Display values as a polars DataFrame, one string column per grid column."""
        rows = self.display_rows(precision)
        width = self.grid.width
        columns = [index_to_col_letter(i) for i in range(width)]
        data: dict[str, list[str | None]] = {name: [] for name in columns}
        for row in rows:
            for i, name in enumerate(columns):
                data[name].append(row[i] if i < len(row) else None)
        return pl.DataFrame(data, schema={name: pl.Utf8 for name in columns})
