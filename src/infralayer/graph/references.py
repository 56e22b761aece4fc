"""
Reference resolution.

Finds ``Reference`` values inside attribute sets (at any nesting depth),
turns them into dependency edges, and substitutes output values for them
once those outputs are known.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Collection, Iterator, Mapping

from infralayer.core.errors import CycleError, UnresolvedReference
from infralayer.resources.models import Address, Reference, Resource


class _Unknown:
    """Marker for an output that only exists after apply."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()

OutputLookup = Callable[[Address, str], Any]


@dataclass(frozen=True)
class Edge:
    """``source`` depends on ``target``: created after it, destroyed before it."""

    source: Address
    target: Address


def iter_references(value: Any, path: str = "") -> Iterator[tuple[str, Reference]]:
    """Yield ``(attribute_path, reference)`` for every reference in ``value``."""
    if isinstance(value, Reference):
        yield path, value
    elif isinstance(value, Mapping):
        for key, item in value.items():
            child = f"{path}.{key}" if path else str(key)
            yield from iter_references(item, child)
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            yield from iter_references(item, f"{path}[{i}]")


def resolve(resource: Resource, addresses: Collection[Address]) -> set[Edge]:
    """
    Build the dependency edges implied by a resource's attributes.

    Args:
        resource: Expanded resource to scan
        addresses: Every address present in the current graph

    Returns:
        Deduplicated set of edges from ``resource`` to each referenced target

    Raises:
        UnresolvedReference: A reference targets an address not in the graph
        CycleError: The resource references itself
    """
    edges: set[Edge] = set()
    for path, ref in iter_references(resource.attributes):
        if ref.target not in addresses:
            raise UnresolvedReference(str(resource.address), str(ref.target), path)
        if ref.target == resource.address:
            raise CycleError([resource.address, resource.address])
        edges.add(Edge(source=resource.address, target=ref.target))
    return edges


def contains_reference(value: Any) -> bool:
    """Return True if ``value`` holds at least one reference."""
    return next(iter_references(value), None) is not None


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, Mapping):
        return any(contains_unknown(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(contains_unknown(v) for v in value)
    return False


def resolve_value(value: Any, lookup: OutputLookup) -> Any:
    """
    Replace every reference in ``value`` with ``lookup(target, output)``.

    Tuples become lists so the result is JSON-shaped. ``lookup`` may return
    ``UNKNOWN`` for outputs that are not known yet.
    """
    if isinstance(value, Reference):
        return lookup(value.target, value.output)
    if isinstance(value, Mapping):
        return {key: resolve_value(item, lookup) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, lookup) for item in value]
    return value
