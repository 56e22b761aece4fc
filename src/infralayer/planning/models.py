"""Plan data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Iterator

from infralayer.resources.models import Address, Resource
from infralayer.state.models import StateRecord

if TYPE_CHECKING:
    from infralayer.resources.builder import ResourceGraph


class Action(StrEnum):
    """What the executor does for one address."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


class Reason(StrEnum):
    """Why an entry was planned, when it is not self-explanatory."""

    REPLACE = "replace"  # immutable attribute changed
    DEPENDENCY_REPLACED = "dependency_replaced"  # an upstream resource is replaced
    ORPHAN = "orphan"  # in state, no longer declared


EntryKey = tuple[Address, Action]


@dataclass(frozen=True)
class PlanEntry:
    """One operation of a plan."""

    address: Address
    action: Action
    position: int = 0
    reason: Reason | None = None
    changed: tuple[str, ...] = ()
    resource: Resource | None = field(default=None, compare=False, repr=False)
    record: StateRecord | None = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> EntryKey:
        return (self.address, self.action)

    @property
    def is_replacement(self) -> bool:
        return self.reason in (Reason.REPLACE, Reason.DEPENDENCY_REPLACED)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "address": str(self.address),
            "action": self.action.value,
            "position": self.position,
        }
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.changed:
            data["changed"] = list(self.changed)
        return data


@dataclass
class Plan:
    """Ordered entries plus the entry-level ordering constraints."""

    entries: list[PlanEntry] = field(default_factory=list)
    dependencies: dict[EntryKey, frozenset[EntryKey]] = field(default_factory=dict)
    # Declared graph the plan was computed from, kept so the plan can be redone
    graph: ResourceGraph | None = field(default=None, compare=False, repr=False)

    def __iter__(self) -> Iterator[PlanEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def depends_on(self, entry: PlanEntry) -> frozenset[EntryKey]:
        return self.dependencies.get(entry.key, frozenset())

    def entries_for(self, address: Address) -> list[PlanEntry]:
        return [entry for entry in self.entries if entry.address == address]

    def actions(self) -> list[tuple[str, Action]]:
        """``(address, action)`` pairs in plan order, handy for assertions and logs."""
        return [(str(entry.address), entry.action) for entry in self.entries]

    @property
    def changes(self) -> list[PlanEntry]:
        return [entry for entry in self.entries if entry.action is not Action.NOOP]

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def summary(self) -> dict[str, int]:
        counts = {action.value: 0 for action in Action}
        for entry in self.entries:
            counts[entry.action.value] += 1
        counts["replace"] = len(
            {e.address for e in self.entries if e.action is Action.CREATE and e.is_replacement}
        )
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "summary": self.summary(),
            "has_changes": self.has_changes,
        }
