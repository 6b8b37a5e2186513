"""Error types for formula parsing and evaluation.

Every evaluation failure is a ``FormulaError`` carrying an ``ErrorKind``.
The engine catches them at the cell boundary and records a ``CellError``
against the failing address; they never abort the whole pass.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from gridcalc.addressing import CellAddress


class ErrorKind(str, Enum):
    type_mismatch = "TypeMismatch"
    division_by_zero = "DivisionByZero"
    no_cell_above = "NoCellAbove"
    unknown_label = "UnknownLabel"
    label_index_out_of_range = "LabelIndexOutOfRange"
    unknown_function = "UnknownFunction"
    arity_mismatch = "ArityMismatch"
    circular_reference = "CircularReference"
    incomplete = "Incomplete"
    propagated_failure = "PropagatedFailure"
    invalid_reference = "InvalidReference"
    parse_error = "ParseError"


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    kind: ErrorKind = ErrorKind.type_mismatch


class FormulaParseError(FormulaError):
    """Syntax error in a cell or document.

    Attributes:
        position: Character position where the error was detected.
        line: 1-based line of the error, when known.
    """

    kind = ErrorKind.parse_error

    def __init__(
        self, message: str, position: int | None = None, line: int | None = None
    ) -> None:
        self.position = position
        self.line = line
        full = f"Formula parse error: {message}"
        if line is not None:
            full += f" (line {line}"
            full += f", column {position})" if position is not None else ")"
        elif position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class FormulaTypeError(FormulaError):
    """Operands or arguments of the wrong type."""

    kind = ErrorKind.type_mismatch


class FormulaDivisionError(FormulaError):
    """Division by zero (including AVG over an empty sequence)."""

    kind = ErrorKind.division_by_zero

    def __init__(self, message: str = "Division by zero") -> None:
        super().__init__(message)


class NoCellAboveError(FormulaError):
    """A look-back reference was used where there is no cell above."""

    kind = ErrorKind.no_cell_above

    def __init__(self, addr: CellAddress) -> None:
        self.addr = addr
        super().__init__(f"No cell above {addr}")


class FormulaRefError(FormulaError):
    """Reference to a cell outside the grid.

    Attributes:
        ref_name: The unresolved reference.
    """

    kind = ErrorKind.invalid_reference

    def __init__(self, ref_name: str) -> None:
        self.ref_name = ref_name
        super().__init__(f"Unknown reference: {ref_name!r}")


class UnknownLabelError(FormulaError):
    """Reference to a label name that no cell declares.

    Attributes:
        label: The unresolved label name.
        available: Names that are declared in the grid.
    """

    kind = ErrorKind.unknown_label

    def __init__(self, label: str, available: list[str] | None = None) -> None:
        self.label = label
        self.available = available or []
        msg = f"Unknown label: {label!r}"
        if self.available:
            msg += f". Available: {self.available}"
        super().__init__(msg)


class LabelIndexError(FormulaError):
    """``@name<k>`` with k beyond the number of occurrences of ``name``."""

    kind = ErrorKind.label_index_out_of_range

    def __init__(self, label: str, index: int, count: int) -> None:
        self.label = label
        self.index = index
        self.count = count
        super().__init__(
            f"Label {label!r} has {count} occurrence(s); index {index} is out of range"
        )


class FormulaFunctionError(FormulaError):
    """Unknown function.

    Attributes:
        func_name: The function that caused the error.
    """

    kind = ErrorKind.unknown_function

    def __init__(self, func_name: str, message: str | None = None) -> None:
        self.func_name = func_name
        msg = message or f"Unknown function: {func_name!r}"
        super().__init__(msg)


class FormulaArityError(FormulaFunctionError):
    """Function called with the wrong number of arguments."""

    kind = ErrorKind.arity_mismatch


class CircularReferenceError(FormulaError):
    """Raised for every cell that belongs to a dependency cycle.

    Attributes:
        cycle: Addresses of all cells in the cycle, in document order.
    """

    kind = ErrorKind.circular_reference

    def __init__(self, cycle: Sequence[CellAddress]) -> None:
        self.cycle = tuple(sorted(cycle))
        parts = ", ".join(str(a) for a in self.cycle)
        super().__init__(f"Circular cell reference: {parts}")


class PropagatedFailureError(FormulaError):
    """A dependency of the cell failed; ``root_cause`` names where."""

    kind = ErrorKind.propagated_failure

    def __init__(self, root_cause: CellAddress) -> None:
        self.root_cause = root_cause
        super().__init__(f"Depends on failed cell {root_cause}")


class IncompleteError(FormulaError):
    """The evaluation deadline expired before the cell was reached."""

    kind = ErrorKind.incomplete

    def __init__(self, deadline_seconds: float) -> None:
        self.deadline_seconds = deadline_seconds
        super().__init__(f"Not evaluated: deadline of {deadline_seconds}s expired")


class SchedulingError(RuntimeError):
    """A cell was evaluated before one of its dependencies.

    Only raised when the evaluation order is broken, never for user input.
    """


ENGINE_ERRORS = (
    FormulaError,
    ZeroDivisionError,
    OverflowError,
    RecursionError,
)
