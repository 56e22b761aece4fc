"""
Declaration YAML loader.

Reads an already-structured document; there is no expression language.

Expected structure:
    resources:
      - kind: aws_vpc
        name: main
        attributes:
          cidr_block: 10.0.0.0/16

      - kind: aws_subnet
        name: public
        count: 2
        attributes:
          vpc_id: {ref: aws_vpc.main, output: id}
          cidr_block: {per_index: [10.0.1.0/24, 10.0.2.0/24]}

      - kind: aws_eks_cluster
        name: main
        attributes:
          vpc_config:
            subnet_ids: {ref: "aws_subnet.public[*]", output: id}

A mapping with exactly ``ref`` and ``output`` keys is a reference. A target
ending in ``[*]`` references every instance; ``[count.index]`` binds to the
referencing instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from infralayer.core.errors import ValidationError
from infralayer.resources.models import (
    COUNT_INDEX,
    SPLAT_INDEX,
    PerIndex,
    Ref,
    ResourceDeclaration,
    Splat,
    split_address,
)

_REF_KEYS = {"ref", "output"}
_DECLARATION_KEYS = {"kind", "name", "count", "attributes"}


def load_declarations(file_path: str | Path) -> list[ResourceDeclaration]:
    """
    Load resource declarations from a YAML file.

    Raises:
        ValidationError: The file is missing, not YAML, or not a declaration document
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise ValidationError(f"Declaration file not found: {file_path}", {"path": str(file_path)})

    try:
        with open(file_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {file_path}: {e}", {"path": str(file_path)}) from e

    return parse_declarations(data, source=str(file_path))


def parse_declarations(data: Any, source: str = "<document>") -> list[ResourceDeclaration]:
    """Convert a loaded YAML document into declarations."""
    if not isinstance(data, dict):
        raise ValidationError(f"Declaration document must be a YAML mapping: {source}")
    resources = data.get("resources")
    if not isinstance(resources, list):
        raise ValidationError(f"'resources' must be a list in {source}")

    declarations = []
    for i, item in enumerate(resources):
        if not isinstance(item, dict):
            raise ValidationError(f"Resource {i} must be a mapping in {source}")
        unknown = set(item) - _DECLARATION_KEYS
        if unknown:
            raise ValidationError(
                f"Resource {i} has unknown key(s) {', '.join(sorted(unknown))} in {source}"
            )
        kind = item.get("kind")
        name = item.get("name")
        if not isinstance(kind, str) or not kind or not isinstance(name, str) or not name:
            raise ValidationError(f"Resource {i} needs a string kind and name in {source}")
        attributes = item.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise ValidationError(f"{kind}.{name}: attributes must be a mapping in {source}")
        declarations.append(
            ResourceDeclaration(
                kind=kind,
                name=name,
                attributes=_convert(attributes, f"{kind}.{name}"),
                count=item.get("count"),
            )
        )
    return declarations


def _convert(value: Any, where: str) -> Any:
    if isinstance(value, dict):
        if "per_index" in value:
            if set(value) != {"per_index"} or not isinstance(value["per_index"], list):
                raise ValidationError(f"{where}: per_index must be the only key and hold a list")
            return PerIndex([_convert(v, where) for v in value["per_index"]])
        if "ref" in value:
            return _reference(value, where)
        return {str(k): _convert(v, f"{where}.{k}") for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v, f"{where}[{i}]") for i, v in enumerate(value)]
    return value


def _reference(value: dict[str, Any], where: str) -> Ref | Splat:
    if set(value) != _REF_KEYS:
        raise ValidationError(f"{where}: a reference needs exactly 'ref' and 'output'")
    target, output = value["ref"], value["output"]
    if not isinstance(target, str) or not isinstance(output, str) or not output:
        raise ValidationError(f"{where}: 'ref' and 'output' must be strings")

    kind, name, index = split_address(target)
    if index == SPLAT_INDEX:
        return Splat(f"{kind}.{name}", output)
    if index == COUNT_INDEX or index is None or isinstance(index, int):
        return Ref(target.strip(), output)
    raise ValidationError(f"{where}: unsupported reference target {target!r}")
