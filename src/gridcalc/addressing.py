"""Cell addressing: column letters, A1-style addresses, and the CellAddress key."""

from __future__ import annotations

import re
from typing import NamedTuple

_ADDR_RE = re.compile(r"^([A-Z]{1,3})(\d+)$")


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    if idx < 0:
        raise ValueError(f"Column index must be non-negative: {idx}")
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


class CellAddress(NamedTuple):
    """Grid position of a cell.

    Attributes:
        column: 0-based column index.
        row: 1-based row number.

    Ordering is row-major (row first), which is document order.
    """

    row: int
    column: int

    @classmethod
    def parse(cls, addr: str) -> CellAddress:
        """Parse ``"B3"`` into ``CellAddress(row=3, column=1)``.

        Raises ValueError on a malformed address.
        """
        m = _ADDR_RE.match(addr.strip().upper())
        if not m:
            raise ValueError(f"Invalid cell address: {addr!r}")
        row = int(m.group(2))
        if row < 1:
            raise ValueError(f"Row numbers start at 1: {addr!r}")
        return cls(row=row, column=col_letter_to_index(m.group(1)))

    @property
    def column_letter(self) -> str:
        return index_to_col_letter(self.column)

    def __str__(self) -> str:
        return f"{self.column_letter}{self.row}"
