"""
Resource model.

Declarations describe desired resources; ``build`` expands them into
``Resource`` instances with index-qualified addresses. Attribute values are
literals, ``Reference`` objects or nested lists/mappings of either.

Declaration-side helpers (expanded before graph construction):

- ``Ref("aws_subnet.public[count.index]", "id")`` binds to the instance index
  of the referencing resource
- ``Splat("aws_subnet.public", "id")`` becomes one reference per instance
- ``PerIndex([...])`` selects one value per instance
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from infralayer.core.errors import ValidationError

COUNT_INDEX = "count.index"
SPLAT_INDEX = "*"

_ADDRESS_RE = re.compile(
    r"^(?P<kind>[A-Za-z][A-Za-z0-9_\-]*)\.(?P<name>[A-Za-z_][A-Za-z0-9_\-]*)"
    r"(?:\[(?P<index>\d+|\*|count\.index)\])?$"
)


@dataclass(frozen=True)
class Address:
    """Unique identity of a resource: ``kind.name`` or ``kind.name[index]``."""

    kind: str
    name: str
    index: int | None = None

    def __str__(self) -> str:
        if self.index is None:
            return f"{self.kind}.{self.name}"
        return f"{self.kind}.{self.name}[{self.index}]"

    @property
    def base(self) -> str:
        """Address without the instance index."""
        return f"{self.kind}.{self.name}"

    @classmethod
    def parse(cls, text: str) -> Address:
        kind, name, index = split_address(text)
        if index in (COUNT_INDEX, SPLAT_INDEX):
            raise ValidationError(f"Address {text!r} is not a concrete resource address")
        return cls(kind=kind, name=name, index=index)  # type: ignore[arg-type]


def split_address(text: str) -> tuple[str, str, int | str | None]:
    """Split an address string into ``(kind, name, index)``.

    ``index`` is an int, ``"count.index"``, ``"*"`` or None.
    """
    match = _ADDRESS_RE.match(text.strip())
    if match is None:
        raise ValidationError(f"Invalid resource address: {text!r}")
    raw = match.group("index")
    index: int | str | None
    if raw is None or raw in (COUNT_INDEX, SPLAT_INDEX):
        index = raw
    else:
        index = int(raw)
    return match.group("kind"), match.group("name"), index


@dataclass(frozen=True)
class Reference:
    """Points at an output field of another resource."""

    target: Address
    output: str

    def __str__(self) -> str:
        return f"{self.target}.{self.output}"


@dataclass(frozen=True)
class Ref:
    """Declaration-side reference; the target may use ``[count.index]``."""

    target: str
    output: str


@dataclass(frozen=True)
class Splat:
    """Declaration-side list of references to every instance of a counted resource."""

    target: str
    output: str


@dataclass(frozen=True)
class PerIndex:
    """Declaration-side value chosen by the instance index."""

    values: Sequence[Any]


@dataclass
class ResourceDeclaration:
    """A declared resource, optionally repeated ``count`` times."""

    kind: str
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    count: int | None = None

    @property
    def base_address(self) -> str:
        return f"{self.kind}.{self.name}"


@dataclass(frozen=True)
class Resource:
    """An expanded declaration instance."""

    address: Address
    attributes: Mapping[str, Any]
    order: int = 0

    @property
    def kind(self) -> str:
        return self.address.kind
