"""
Declaration expansion and graph construction.

``build`` turns declarations into an immutable ``ResourceGraph``:
count expansion, address uniqueness, per-kind validation, reference
resolution and cycle detection all happen here, before any provider call.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

import structlog

from infralayer.core.errors import UnresolvedReference, ValidationError
from infralayer.graph.dag import DependencyGraph
from infralayer.graph.references import resolve
from infralayer.resources.kinds import validate_resource
from infralayer.resources.models import (
    COUNT_INDEX,
    SPLAT_INDEX,
    Address,
    PerIndex,
    Ref,
    Reference,
    Resource,
    ResourceDeclaration,
    Splat,
    split_address,
)

logger = structlog.get_logger()


class ResourceGraph:
    """Declared resources plus the dependency edges derived from references."""

    def __init__(self, resources: Iterable[Resource], dag: DependencyGraph[Address]) -> None:
        self._resources: dict[Address, Resource] = {r.address: r for r in resources}
        self._dag = dag

    @classmethod
    def empty(cls) -> ResourceGraph:
        return cls([], DependencyGraph())

    def __contains__(self, address: object) -> bool:
        return address in self._resources

    def __getitem__(self, address: Address) -> Resource:
        return self._resources[address]

    def __iter__(self) -> Iterator[Address]:
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    @property
    def resources(self) -> list[Resource]:
        return list(self._resources.values())

    @property
    def dag(self) -> DependencyGraph[Address]:
        return self._dag

    def get(self, address: Address) -> Resource | None:
        return self._resources.get(address)

    def dependencies(self, address: Address) -> set[Address]:
        return self._dag.dependencies(address)

    def topological_order(self) -> list[Address]:
        return self._dag.topological_order()

    def reverse_order(self) -> list[Address]:
        return self._dag.reverse_order()


def build(declarations: Iterable[ResourceDeclaration]) -> ResourceGraph:
    """
    Build the resource graph for one declaration snapshot.

    Raises:
        ValidationError: Duplicate addresses, bad counts or malformed attributes
        UnresolvedReference: A reference targets an undeclared resource
        CycleError: References form a cycle
    """
    declarations = list(declarations)
    counts = _collect_counts(declarations)
    resources = list(expand(declarations, counts))

    for resource in resources:
        validate_resource(resource)

    dag: DependencyGraph[Address] = DependencyGraph(r.address for r in resources)
    addresses = {r.address for r in resources}
    for resource in resources:
        for edge in sorted(resolve(resource, addresses), key=lambda e: str(e.target)):
            dag.add_edge(edge.source, edge.target)

    # Surface cycles now rather than at plan time
    dag.topological_order()

    logger.debug("graph_built", resources=len(resources), edges=len(dag.edges))
    return ResourceGraph(resources, dag)


def _collect_counts(declarations: list[ResourceDeclaration]) -> dict[str, int | None]:
    counts: dict[str, int | None] = {}
    for decl in declarations:
        if decl.count is not None:
            if isinstance(decl.count, bool) or not isinstance(decl.count, int) or decl.count < 0:
                raise ValidationError(
                    f"{decl.base_address}: count must be a non-negative integer, got {decl.count!r}",
                    {"address": decl.base_address},
                )
        if decl.base_address in counts:
            raise ValidationError(
                f"Duplicate resource declaration: {decl.base_address}",
                {"address": decl.base_address},
            )
        counts[decl.base_address] = decl.count
    return counts


def expand(
    declarations: list[ResourceDeclaration],
    counts: Mapping[str, int | None] | None = None,
) -> Iterator[Resource]:
    """Expand counted declarations into index-qualified resources."""
    counts = counts if counts is not None else _collect_counts(declarations)
    order = 0
    for decl in declarations:
        indexes: list[int | None] = [None] if decl.count is None else list(range(decl.count))
        for index in indexes:
            address = Address(decl.kind, decl.name, index)
            attributes = _bind(decl.attributes, address, counts, path="")
            if not isinstance(attributes, Mapping):
                raise ValidationError(f"{address}: attributes must be a mapping")
            yield Resource(address=address, attributes=MappingProxyType(attributes), order=order)
            order += 1


def _bind(value: Any, address: Address, counts: Mapping[str, int | None], path: str) -> Any:
    """Replace declaration-side helpers with concrete values and references."""
    if isinstance(value, Reference):
        return value
    if isinstance(value, Ref):
        return _bind_ref(value, address, counts, path)
    if isinstance(value, Splat):
        kind, name, index = split_address(value.target)
        base = f"{kind}.{name}"
        if base not in counts:
            raise UnresolvedReference(str(address), value.target, path)
        if index not in (None, SPLAT_INDEX):
            raise ValidationError(f"{address}.{path}: splat target must not carry an index")
        count = counts[base]
        if count is None:
            return [Reference(Address(kind, name), value.output)]
        return [Reference(Address(kind, name, i), value.output) for i in range(count)]
    if isinstance(value, PerIndex):
        if address.index is None:
            raise ValidationError(f"{address}.{path}: per-index value used on a resource without count")
        if address.index >= len(value.values):
            raise ValidationError(
                f"{address}.{path}: per-index value has {len(value.values)} entries, "
                f"needs index {address.index}"
            )
        return _bind(value.values[address.index], address, counts, path)
    if isinstance(value, Mapping):
        return {
            str(key): _bind(item, address, counts, f"{path}.{key}" if path else str(key))
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_bind(item, address, counts, f"{path}[{i}]") for i, item in enumerate(value)]
    return value


def _bind_ref(ref: Ref, address: Address, counts: Mapping[str, int | None], path: str) -> Reference:
    kind, name, index = split_address(ref.target)
    if index == SPLAT_INDEX:
        raise ValidationError(f"{address}.{path}: use a splat to reference every instance")
    if index == COUNT_INDEX:
        if address.index is None:
            raise ValidationError(f"{address}.{path}: count.index used on a resource without count")
        index = address.index
    return Reference(Address(kind, name, index), ref.output)  # type: ignore[arg-type]
