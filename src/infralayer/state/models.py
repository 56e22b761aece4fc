"""
State records and the persisted state document.

``StateRecord`` is the in-memory form used by the planner and executor;
``StateDocument`` is the pydantic model validating the on-disk JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from infralayer.resources.models import Address

STATE_VERSION = 1


@dataclass(frozen=True)
class StateRecord:
    """Last-known identity and attributes of one managed resource."""

    address: Address
    kind: str
    provider_id: str
    attribute_snapshot: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    dependencies: tuple[Address, ...] = ()
    last_applied_hash: str = ""

    def to_model(self) -> StateRecordModel:
        return StateRecordModel(
            kind=self.kind,
            provider_id=self.provider_id,
            attribute_snapshot=self.attribute_snapshot,
            outputs=self.outputs,
            dependencies=sorted(str(dep) for dep in self.dependencies),
            last_applied_hash=self.last_applied_hash,
        )

    @classmethod
    def from_model(cls, address: str, model: StateRecordModel) -> StateRecord:
        return cls(
            address=Address.parse(address),
            kind=model.kind,
            provider_id=model.provider_id,
            attribute_snapshot=dict(model.attribute_snapshot),
            outputs=dict(model.outputs),
            dependencies=tuple(Address.parse(dep) for dep in model.dependencies),
            last_applied_hash=model.last_applied_hash,
        )


class _Tombstone:
    """Commit marker that removes a record."""

    def __repr__(self) -> str:
        return "TOMBSTONE"


TOMBSTONE = _Tombstone()


class StateRecordModel(BaseModel):
    kind: str
    provider_id: str
    attribute_snapshot: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    last_applied_hash: str


class StateDocument(BaseModel):
    """Top-level state file: address -> record."""

    version: int = STATE_VERSION
    serial: int = 0
    resources: dict[str, StateRecordModel] = Field(default_factory=dict)

    @classmethod
    def from_records(cls, records: dict[Address, StateRecord], serial: int = 0) -> StateDocument:
        return cls(
            serial=serial,
            resources={str(address): record.to_model() for address, record in records.items()},
        )

    def to_records(self) -> dict[Address, StateRecord]:
        records = [
            StateRecord.from_model(address, model) for address, model in self.resources.items()
        ]
        return {record.address: record for record in sorted(records, key=lambda r: str(r.address))}

    def render(self) -> str:
        """Serialize deterministically (sorted keys, trailing newline)."""
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
