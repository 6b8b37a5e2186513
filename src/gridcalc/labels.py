"""Label registry: ``!name`` declarations and ``@name<k>`` lookup."""

from __future__ import annotations

from gridcalc.addressing import CellAddress
from gridcalc.formulas.errors import LabelIndexError, UnknownLabelError
from gridcalc.grid import CellKind, Grid


class LabelRegistry:
    """Addresses of label cells, grouped by name in document order.

    Built fresh for each grid by ``from_grid`` and frozen afterwards, so
    repeated evaluations of the same grid resolve identically.  Indices
    are 0-based: ``@base<0>`` is the first ``!base`` in the document.
    """

    def __init__(self) -> None:
        self._occurrences: dict[str, list[CellAddress]] = {}
        self._frozen = False

    @classmethod
    def from_grid(cls, grid: Grid) -> LabelRegistry:
        registry = cls()
        for cell in grid:
            if cell.kind is CellKind.label and cell.label is not None:
                registry.register(cell.label, cell.address)
        registry.freeze()
        return registry

    def register(self, name: str, addr: CellAddress) -> None:
        if self._frozen:
            raise RuntimeError("Label registry is read-only once built")
        self._occurrences.setdefault(name, []).append(addr)

    def freeze(self) -> None:
        self._frozen = True

    def names(self) -> list[str]:
        return sorted(self._occurrences)

    def occurrences(self, name: str) -> tuple[CellAddress, ...]:
        return tuple(self._occurrences.get(name, ()))

    def __contains__(self, name: object) -> bool:
        return name in self._occurrences

    def __len__(self) -> int:
        return sum(len(v) for v in self._occurrences.values())

    def resolve(self, name: str, index: int) -> CellAddress:
        """Address of the *index*-th cell labelled *name*.

        Raises:
            UnknownLabelError: No cell declares *name*.
            LabelIndexError: Fewer than ``index + 1`` cells declare *name*.
        """
        addrs = self._occurrences.get(name)
        if not addrs:
            raise UnknownLabelError(name, available=self.names())
        if index < 0 or index >= len(addrs):
            raise LabelIndexError(name, index, len(addrs))
        return addrs[index]
