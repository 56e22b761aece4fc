"""Dependency graph and reference resolution."""

from infralayer.graph.dag import DependencyGraph
from infralayer.graph.references import UNKNOWN, Edge, iter_references, resolve, resolve_value

__all__ = [
    "DependencyGraph",
    "Edge",
    "UNKNOWN",
    "iter_references",
    "resolve",
    "resolve_value",
]
