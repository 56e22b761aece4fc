"""Resource model: addresses, references and declarations."""

from infralayer.resources.models import (
    Address,
    PerIndex,
    Ref,
    Reference,
    Resource,
    ResourceDeclaration,
    Splat,
)

__all__ = [
    "Address",
    "PerIndex",
    "Ref",
    "Reference",
    "Resource",
    "ResourceDeclaration",
    "Splat",
]
