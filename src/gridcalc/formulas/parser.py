"""Lark-based parsers for grid documents and cell contents.

Two grammars:

- The *document* grammar splits text into rows (newline separated) and
  cells (delimiter separated).  Delimiters inside double-quoted strings do
  not split cells.
- The *cell* grammar parses one cell's text:

  - ``=expr``              equation
  - ``!name``              label (optionally followed by a literal or ``=expr``)
  - anything else          literal text

Expressions support:

- Cell references: ``B3``, ``AA10``
- Whole-column references: ``A^v`` (all values above the current row)
- Copy-evaluated: ``A^`` (value of column A one row up)
- Copy-above: ``^^`` (value of the current column one row up)
- Label references: ``@name<k>`` (k-th occurrence, 0-based)
- Function calls: ``sum(A^v, 2)``
- ``+ - * /`` with no precedence: chains fold strictly left to right
- Unary minus, parentheses, numbers and double-quoted strings
"""

from __future__ import annotations

import json
import re
from functools import lru_cache

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput

from gridcalc.formulas.errors import FormulaParseError

# LALR(1) grammar for one cell.
# There are no precedence tiers: ``chain`` collects every operand/operator
# pair and the expression builder folds them left to right.
CELL_GRAMMAR = r"""
?cell: equation
    | label
    | literal

equation: "=" expr
literal: LITERAL
label: LABEL (equation | literal)?

?expr: chain

?chain: unary (op unary)*

!op: "+" | "-" | "*" | "/"

?unary: "-" unary                -> neg
    | atom

?atom: NUMBER                    -> number
    | ESCAPED_STRING             -> string
    | NAME "(" args ")"          -> func_call
    | COLUMN_REF                 -> column_ref
    | COPY_EVALUATED             -> copy_evaluated
    | "^^"                       -> copy_above
    | LABEL_REF                  -> label_ref
    | CELL_REF                   -> cell_ref
    | "(" expr ")"

args: expr ("," expr)*
    |

LABEL: /![A-Za-z_][A-Za-z0-9_]*/

// Free text; only reachable at the start of a cell or after a label
LITERAL: /[^=!\s][^\n]*/

// Whole-column reference: A^v
COLUMN_REF.4: /[A-Z]{1,3}\^v/

// Copy-evaluated: A^
COPY_EVALUATED.3: /[A-Z]{1,3}\^/

// Indexed label reference: @name<0>
LABEL_REF.3: /@[A-Za-z_][A-Za-z0-9_]*<[0-9]+>/

// Cell reference: A1, F2, AA10 (uppercase only); LOG10( is a function name
CELL_REF.2: /[A-Z]{1,3}[0-9]+(?![A-Za-z0-9_(])/

NAME.1: /[A-Za-z_][A-Za-z0-9_]*/

%import common.NUMBER
%import common.ESCAPED_STRING
%import common.WS
%ignore WS
"""

_DOCUMENT_GRAMMAR = r"""
document: row (_NL row)*
row: cell_text (_DELIM cell_text)*
cell_text: CELL_TEXT?

CELL_TEXT: /(?:[^{cls}\r\n"]|"(?:\\.|[^"\\\r\n])*"|")+/
_DELIM: {delim}
_NL: /\r?\n/
"""

_cell_parser = Lark(CELL_GRAMMAR, parser="lalr", start="cell")

_LABEL_REF_RE = re.compile(r"^@([A-Za-z_][A-Za-z0-9_]*)<([0-9]+)>$")


@lru_cache(maxsize=8)
def _document_parser(delimiter: str) -> Lark:
    if len(delimiter) != 1 or delimiter in "\r\n\"":
        raise ValueError(f"Delimiter must be a single character other than quote or newline: {delimiter!r}")
    grammar = _DOCUMENT_GRAMMAR.format(
        cls=re.escape(delimiter),
        delim=json.dumps(delimiter),
    )
    return Lark(grammar, parser="lalr", start="document")


def _parse_error(exc: UnexpectedInput, offset: int = 0) -> FormulaParseError:
    line = getattr(exc, "line", None)
    column = getattr(exc, "column", None)
    if column is not None and column > 0:
        column += offset
    return FormulaParseError(str(exc).splitlines()[0], position=column, line=line)


def parse_document(text: str, delimiter: str = "|") -> Tree:
    """Parse document text into a ``document`` tree of rows of ``cell_text``.

    Leading and trailing whitespace of the whole document is ignored.

    Raises:
        FormulaParseError: If the text cannot be split into cells.
    """
    try:
        return _document_parser(delimiter).parse(text.strip())
    except UnexpectedInput as exc:
        raise _parse_error(exc) from exc


def split_document(text: str, delimiter: str = "|") -> list[list[str]]:
    """Split document text into rows of raw cell strings."""
    if not text.strip():
        return []
    tree = parse_document(text, delimiter)
    rows: list[list[str]] = []
    for row in tree.children:
        cells: list[str] = []
        for cell in row.children:
            cells.append(str(cell.children[0]) if cell.children else "")
        rows.append(cells)
    return rows


def parse_cell(text: str) -> Tree | None:
    """Parse one cell's text.

    Returns:
        A Lark tree rooted at ``equation``, ``label`` or ``literal``, or
        ``None`` for an empty (whitespace-only) cell.

    Raises:
        FormulaParseError: If the cell has invalid syntax.
    """
    if not text.strip():
        return None
    try:
        return _cell_parser.parse(text)
    except UnexpectedInput as exc:
        raise _parse_error(exc) from exc


def parse_formula(text: str) -> Tree:
    """Parse an equation (must start with ``=``) into a Lark tree.

    Args:
        text: The formula text, e.g. ``"=A1 + sum(B^v)"``.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not text.startswith("="):
        raise FormulaParseError("Formula must start with '='", position=0)
    tree = parse_cell(text)
    assert tree is not None
    return tree


def parse_label_ref(token: Token | str) -> tuple[str, int]:
    """Split a LABEL_REF token into (name, index).

    Examples:
        ``"@base<0>"`` → ``("base", 0)``
    """
    m = _LABEL_REF_RE.match(str(token))
    if not m:
        raise FormulaParseError(f"Invalid label reference: {str(token)!r}")
    return m.group(1), int(m.group(2))
