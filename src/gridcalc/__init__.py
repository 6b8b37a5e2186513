"""gridcalc -- a tabular formula language and its evaluation engine."""

__version__ = "0.1.0"

from gridcalc.addressing import CellAddress  # noqa: E402
from gridcalc.engine import Engine, evaluate_grid, evaluate_text  # noqa: E402
from gridcalc.grid import Cell, CellKind, Grid  # noqa: E402
from gridcalc.results import CellError, CellOutcome, CellState, ResultTable  # noqa: E402

__all__ = [
    "Cell",
    "CellAddress",
    "CellError",
    "CellKind",
    "CellOutcome",
    "CellState",
    "Engine",
    "Grid",
    "ResultTable",
    "__version__",
    "evaluate_grid",
    "evaluate_text",
]
