"""
Dependency graph.

Directed acyclic graph where an edge ``a -> b`` means ``a`` depends on ``b``:
``b`` is created first and destroyed last. Ordering is Kahn's algorithm with
ties broken by insertion order (or an explicit priority), so plans are
reproducible.
"""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING, Any, Callable, Generic, Hashable, Iterable, Iterator, TypeVar

from infralayer.core.errors import CycleError

if TYPE_CHECKING:
    from infralayer.resources.models import Address
    from infralayer.state.models import StateRecord

N = TypeVar("N", bound=Hashable)


class DependencyGraph(Generic[N]):
    """Insertion-ordered DAG over hashable nodes."""

    def __init__(self, nodes: Iterable[N] = ()) -> None:
        self._order: dict[N, int] = {}
        self._dependencies: dict[N, set[N]] = {}
        self._dependents: dict[N, set[N]] = {}
        for node in nodes:
            self.add_node(node)

    @classmethod
    def from_state(cls, records: dict[Address, StateRecord]) -> DependencyGraph[Address]:
        """
        Build the graph of what currently exists.

        Nodes are inserted in sorted address order; dependencies on addresses
        that have no record any more are ignored.
        """
        graph: DependencyGraph[Address] = DependencyGraph(sorted(records, key=str))
        for address, record in records.items():
            for dep in record.dependencies:
                if dep in records:
                    graph.add_edge(address, dep)
        return graph

    def __contains__(self, node: object) -> bool:
        return node in self._order

    def __iter__(self) -> Iterator[N]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def add_node(self, node: N) -> None:
        if node not in self._order:
            self._order[node] = len(self._order)
            self._dependencies[node] = set()
            self._dependents[node] = set()

    def add_edge(self, source: N, target: N) -> None:
        """Record that ``source`` depends on ``target``."""
        self.add_node(source)
        self.add_node(target)
        self._dependencies[source].add(target)
        self._dependents[target].add(source)

    @property
    def edges(self) -> list[tuple[N, N]]:
        return [
            (source, target)
            for source in self._order
            for target in sorted(self._dependencies[source], key=self._order.__getitem__)
        ]

    def dependencies(self, node: N) -> set[N]:
        """Nodes ``node`` directly depends on."""
        return set(self._dependencies.get(node, ()))

    def dependents(self, node: N) -> set[N]:
        """Nodes that directly depend on ``node``."""
        return set(self._dependents.get(node, ()))

    def transitive_dependents(self, node: N) -> set[N]:
        """Every node with a dependency path to ``node``."""
        result: set[N] = set()
        stack = list(self._dependents.get(node, ()))
        while stack:
            current = stack.pop()
            if current in result:
                continue
            result.add(current)
            stack.extend(self._dependents[current])
        return result

    def topological_order(self, priority: Callable[[N], Any] | None = None) -> list[N]:
        """
        Order nodes so every node comes after all of its dependencies.

        Among nodes that are ready at the same time, the one with the lowest
        ``priority`` (default: insertion order) goes first.

        Raises:
            CycleError: The graph contains a cycle
        """
        key = priority or self._order.__getitem__
        in_degree = {node: len(deps) for node, deps in self._dependencies.items()}
        ready = [(key(n), self._order[n], n) for n, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        ordered: list[N] = []
        while ready:
            _, _, node = heapq.heappop(ready)
            ordered.append(node)
            for dependent in self._dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (key(dependent), self._order[dependent], dependent))

        if len(ordered) != len(self._order):
            raise CycleError(self.find_cycle())
        return ordered

    def reverse_order(self) -> list[N]:
        """Exact reverse of ``topological_order()``; used for destroy."""
        return list(reversed(self.topological_order()))

    def find_cycle(self) -> list[N]:
        """Return one cycle as a closed node path, or an empty list."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = dict.fromkeys(self._order, WHITE)
        parent: dict[N, N] = {}

        for start in self._order:
            if color[start] != WHITE:
                continue
            stack: list[tuple[N, Iterator[N]]] = [(start, iter(self._sorted_deps(start)))]
            color[start] = GREY
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    color[node] = BLACK
                    stack.pop()
                    continue
                if color[child] == GREY:
                    cycle = [child, node]
                    while cycle[-1] != child:
                        cycle.append(parent[cycle[-1]])
                    cycle.reverse()
                    return cycle
                if color[child] == WHITE:
                    color[child] = GREY
                    parent[child] = node
                    stack.append((child, iter(self._sorted_deps(child))))
        return []

    def _sorted_deps(self, node: N) -> list[N]:
        return sorted(self._dependencies[node], key=self._order.__getitem__)
