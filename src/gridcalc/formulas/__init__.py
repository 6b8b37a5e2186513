"""Cell grammar, expression trees and formula errors.

Public API::

    from gridcalc.formulas import parse_cell, parse_formula, compile_formula

The evaluator lives in ``gridcalc.formulas.evaluator`` and is driven by
``gridcalc.engine``.
"""

from gridcalc.formulas.ast import (
    BinaryOp,
    CellRef,
    ColumnRef,
    CopyAbove,
    CopyEvaluated,
    FunctionCall,
    LabelRef,
    Literal,
    Negate,
    build_expression,
    compile_formula,
    iter_references,
)
from gridcalc.formulas.errors import (
    ENGINE_ERRORS,
    ErrorKind,
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
)
from gridcalc.formulas.parser import (
    parse_cell,
    parse_document,
    parse_formula,
    split_document,
)

__all__ = [
    "BinaryOp",
    "CellRef",
    "ColumnRef",
    "CopyAbove",
    "CopyEvaluated",
    "ENGINE_ERRORS",
    "ErrorKind",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FunctionCall",
    "LabelRef",
    "Literal",
    "Negate",
    "build_expression",
    "compile_formula",
    "iter_references",
    "parse_cell",
    "parse_document",
    "parse_formula",
    "split_document",
]
