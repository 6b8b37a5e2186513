"""Dependency graph over grid cells and the evaluation schedule.

Every cell is a node.  An equation cell has an edge to each address its
references resolve to; a whole-column reference contributes one edge per
member of the range.  Literal, label and empty cells have no edges.

``schedule()`` finds strongly connected components (Tarjan) to isolate
cycles, then orders the components with Kahn's algorithm so that every
cell comes after the cells it reads.  Ready components are taken in
document order, which makes the schedule deterministic.
"""

from __future__ import annotations

import heapq
from typing import Iterable

from gridcalc.addressing import CellAddress
from gridcalc.formulas.resolver import ReferenceResolver
from gridcalc.grid import Grid


class DependencyGraph:
    """Adjacency structure keyed by cell address.

    Attributes:
        dependencies: cell -> set of cells it reads from.
        dependents: cell -> set of cells that read from it (reverse edges).
    """

    __slots__ = ("dependencies", "dependents")

    def __init__(self, nodes: Iterable[CellAddress] = ()) -> None:
        self.dependencies: dict[CellAddress, set[CellAddress]] = {}
        self.dependents: dict[CellAddress, set[CellAddress]] = {}
        for node in nodes:
            self.add_node(node)

    @classmethod
    def build(cls, grid: Grid, resolver: ReferenceResolver) -> DependencyGraph:
        """Walk every equation in *grid* and record its edges."""
        graph = cls(cell.address for cell in grid)
        for cell in grid:
            if cell.expression is None:
                continue
            for dep in resolver.dependencies(cell.expression, cell.address):
                graph.add_edge(cell.address, dep)
        return graph

    def add_node(self, node: CellAddress) -> None:
        self.dependencies.setdefault(node, set())
        self.dependents.setdefault(node, set())

    def add_edge(self, dependent: CellAddress, dependency: CellAddress) -> None:
        self.add_node(dependent)
        self.add_node(dependency)
        self.dependencies[dependent].add(dependency)
        self.dependents[dependency].add(dependent)

    def dependencies_of(self, node: CellAddress) -> set[CellAddress]:
        return set(self.dependencies.get(node, ()))

    def __len__(self) -> int:
        return len(self.dependencies)

    def edge_count(self) -> int:
        return sum(len(d) for d in self.dependencies.values())


class Schedule:
    """Evaluation order plus the cycles found while computing it.

    Attributes:
        order: Every node, dependencies before dependents.  Members of a
            cycle appear together, in document order.
        cycles: Each cycle's members, sorted; cycles listed in document order.
    """

    def __init__(self, order: list[CellAddress], cycles: list[tuple[CellAddress, ...]]) -> None:
        self.order = order
        self.cycles = cycles
        self._cycle_of = {addr: cycle for cycle in cycles for addr in cycle}

    def cycle_of(self, addr: CellAddress) -> tuple[CellAddress, ...] | None:
        return self._cycle_of.get(addr)

    def in_cycle(self, addr: CellAddress) -> bool:
        return addr in self._cycle_of


def strongly_connected_components(graph: DependencyGraph) -> list[list[CellAddress]]:
    """Tarjan's algorithm, iterative so long reference chains cannot overflow the stack.

    Components come out dependencies-first.
    """
    index_of: dict[CellAddress, int] = {}
    lowlink: dict[CellAddress, int] = {}
    on_stack: set[CellAddress] = set()
    stack: list[CellAddress] = []
    components: list[list[CellAddress]] = []
    counter = 0

    for root in sorted(graph.dependencies):
        if root in index_of:
            continue
        # Each frame: (node, iterator over its sorted successors)
        work = [(root, iter(sorted(graph.dependencies[root])))]
        index_of[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)

        while work:
            node, successors = work[-1]
            advanced = False
            for succ in successors:
                if succ not in index_of:
                    index_of[succ] = lowlink[succ] = counter
                    counter += 1
                    stack.append(succ)
                    on_stack.add(succ)
                    work.append((succ, iter(sorted(graph.dependencies[succ]))))
                    advanced = True
                    break
                if succ in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[succ])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index_of[node]:
                component: list[CellAddress] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component))

    return components


def schedule(graph: DependencyGraph) -> Schedule:
    """Order every node of *graph* for evaluation and collect its cycles.

    A component is a cycle when it has more than one member or its single
    member reads itself.
    """
    components = strongly_connected_components(graph)
    component_of: dict[CellAddress, int] = {}
    for i, comp in enumerate(components):
        for addr in comp:
            component_of[addr] = i

    # Condensed graph: component -> components it depends on
    waiting_on: list[set[int]] = [set() for _ in components]
    unblocks: list[set[int]] = [set() for _ in components]
    for i, comp in enumerate(components):
        for addr in comp:
            for dep in graph.dependencies[addr]:
                j = component_of[dep]
                if j != i:
                    waiting_on[i].add(j)
                    unblocks[j].add(i)

    remaining = [len(w) for w in waiting_on]
    ready = [(components[i][0], i) for i in range(len(components)) if remaining[i] == 0]
    heapq.heapify(ready)

    order: list[CellAddress] = []
    cycles: list[tuple[CellAddress, ...]] = []
    while ready:
        _, i = heapq.heappop(ready)
        comp = components[i]
        order.extend(comp)
        if len(comp) > 1 or comp[0] in graph.dependencies[comp[0]]:
            cycles.append(tuple(comp))
        for j in unblocks[i]:
            remaining[j] -= 1
            if remaining[j] == 0:
                heapq.heappush(ready, (components[j][0], j))

    if len(order) != len(graph):
        # The condensation of a graph is always acyclic.
        raise RuntimeError("Scheduling left nodes unordered")

    cycles.sort()
    return Schedule(order, cycles)
