from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Mapping, Protocol


@dataclass(frozen=True)
class ProviderResourceSchema:
    """Schema metadata describing a provider-managed resource kind."""

    kind: str
    description: str
    id_prefix: str = ""
    immutable_attributes: frozenset[str] = field(default_factory=frozenset)


class ProviderAdapter(Protocol):
    """Operations the engine needs from a cloud provider, keyed by kind."""

    name: str

    async def create(self, kind: str, attributes: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
        """Create an object; return its provider id and output attributes."""
        ...

    async def read(self, kind: str, provider_id: str) -> dict[str, Any]:
        """Return current output attributes or raise NotFoundError."""
        ...

    async def update(
        self, kind: str, provider_id: str, attributes: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Update in place or raise UpdateUnsupported."""
        ...

    async def delete(self, kind: str, provider_id: str) -> None:
        ...

    def requires_replace(self, kind: str, changed: Collection[str]) -> bool:
        """Whether changing these attributes forces delete + create."""
        ...


class SchemaProviderAdapter:
    """Shared replacement logic for adapters that publish per-kind schemas."""

    name = "base"

    def __init__(self, schemas: Collection[ProviderResourceSchema] = ()) -> None:
        self._schemas: dict[str, ProviderResourceSchema] = {s.kind: s for s in schemas}

    def schema(self, kind: str) -> ProviderResourceSchema | None:
        return self._schemas.get(kind)

    def resources(self) -> list[ProviderResourceSchema]:
        return list(self._schemas.values())

    def requires_replace(self, kind: str, changed: Collection[str]) -> bool:
        schema = self._schemas.get(kind)
        if schema is None:
            return False
        return any(attribute in schema.immutable_attributes for attribute in changed)
