"""
Planner.

Diffs the declared graph against recorded state and orders the resulting
operations. Neither input is mutated.

Ordering rules, as edges of an entry-level graph:

- create/update/no-op of a resource follows those of its declared dependencies
- deletes follow the deletes of whatever depended on them in state
- a replaced resource is deleted before it is created again
- a delete waits for surviving resources that still referenced it to be updated

Addresses passed as ``force_replace`` are replaced even when their attributes
would allow an in-place update, cascading to their dependents like any other
replacement.

Ready entries are taken non-deletes first, in declaration order, then deletes
in reverse state-dependency order.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, replace
from typing import Any, Collection, Mapping, Protocol

import structlog

from infralayer.graph.dag import DependencyGraph
from infralayer.graph.references import UNKNOWN, contains_unknown, resolve_value
from infralayer.planning.models import Action, EntryKey, Plan, PlanEntry, Reason
from infralayer.resources.builder import ResourceGraph
from infralayer.resources.models import Address
from infralayer.state.models import StateRecord

logger = structlog.get_logger()

UNKNOWN_MARKER = "${unknown}"


class ReplacementPolicy(Protocol):
    def requires_replace(self, kind: str, changed: Collection[str]) -> bool:
        ...


def _encode(value: Any) -> Any:
    if value is UNKNOWN:
        return UNKNOWN_MARKER
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Cannot hash attribute value of type {type(value).__name__}")


def desired_hash(kind: str, attributes: Mapping[str, Any]) -> str:
    """sha256 over the kind and canonical JSON of the resolved attributes."""
    payload = json.dumps(
        {"kind": kind, "attributes": attributes},
        sort_keys=True,
        separators=(",", ":"),
        default=_encode,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def changed_attributes(previous: Mapping[str, Any], desired: Mapping[str, Any]) -> tuple[str, ...]:
    """Top-level attribute names whose values differ or are not known yet."""
    keys = set(previous) | set(desired)
    return tuple(
        sorted(
            key
            for key in keys
            if contains_unknown(desired.get(key)) or previous.get(key) != desired.get(key)
        )
    )


@dataclass
class _Decision:
    action: Action
    reason: Reason | None = None
    changed: tuple[str, ...] = ()

    @property
    def replaces(self) -> bool:
        return self.reason in (Reason.REPLACE, Reason.DEPENDENCY_REPLACED)


class Planner:
    """Computes ordered plans against a provider's replacement rules."""

    def __init__(
        self, provider: ReplacementPolicy, force_replace: Collection[Address] = ()
    ) -> None:
        self._provider = provider
        self._force_replace = frozenset(force_replace)

    def plan(self, graph: ResourceGraph, state: Mapping[Address, StateRecord]) -> Plan:
        """
        Build the ordered plan for ``graph`` given the recorded ``state``.

        Raises:
            CycleError: Declared or recorded dependencies cannot be ordered
        """
        decisions = self._decide(graph, state)
        orphans = [address for address in state if address not in graph]
        plan = self._order(graph, state, decisions, orphans)
        logger.info("plan_built", **plan.summary())
        return plan

    def _decide(
        self, graph: ResourceGraph, state: Mapping[Address, StateRecord]
    ) -> dict[Address, _Decision]:
        decisions: dict[Address, _Decision] = {}
        # Outputs of these addresses are only known after apply
        pending: set[Address] = set()

        def lookup(target: Address, output: str) -> Any:
            record = state.get(target)
            if target in pending or record is None:
                return UNKNOWN
            return record.outputs.get(output, UNKNOWN)

        for address in graph.topological_order():
            resource = graph[address]
            record = state.get(address)
            if record is None:
                decisions[address] = _Decision(Action.CREATE)
                pending.add(address)
                continue

            if any(decisions[dep].replaces for dep in graph.dependencies(address)):
                decisions[address] = _Decision(Action.CREATE, Reason.DEPENDENCY_REPLACED)
                pending.add(address)
                continue

            resolved = resolve_value(resource.attributes, lookup)
            forced = address in self._force_replace
            if not forced and desired_hash(resource.kind, resolved) == record.last_applied_hash:
                decisions[address] = _Decision(Action.NOOP)
                continue

            changed = changed_attributes(record.attribute_snapshot, resolved)
            if forced or self._provider.requires_replace(resource.kind, changed):
                decisions[address] = _Decision(Action.CREATE, Reason.REPLACE, changed)
                pending.add(address)
            else:
                decisions[address] = _Decision(Action.UPDATE, changed=changed)
        return decisions

    def _order(
        self,
        graph: ResourceGraph,
        state: Mapping[Address, StateRecord],
        decisions: dict[Address, _Decision],
        orphans: list[Address],
    ) -> Plan:
        state_graph = DependencyGraph.from_state(dict(state))
        delete_rank = {address: i for i, address in enumerate(state_graph.reverse_order())}

        ops: DependencyGraph[EntryKey] = DependencyGraph()
        entries: dict[EntryKey, PlanEntry] = {}
        priority: dict[EntryKey, tuple[int, int]] = {}
        forward: dict[Address, EntryKey] = {}
        deletes: dict[Address, EntryKey] = {}

        for address in graph.topological_order():
            decision = decisions[address]
            key = (address, decision.action)
            forward[address] = key
            entries[key] = PlanEntry(
                address=address,
                action=decision.action,
                reason=decision.reason,
                changed=decision.changed,
                resource=graph[address],
                record=state.get(address),
            )
            priority[key] = (0, graph[address].order)
            ops.add_node(key)

        replaced = [address for address in forward if decisions[address].replaces]
        for address, reason in [(a, decisions[a].reason) for a in replaced] + [
            (a, Reason.ORPHAN) for a in orphans
        ]:
            key = (address, Action.DELETE)
            deletes[address] = key
            entries[key] = PlanEntry(
                address=address,
                action=Action.DELETE,
                reason=reason,
                record=state[address],
            )
            priority[key] = (1, delete_rank[address])
            ops.add_node(key)

        for address in forward:
            for dep in graph.dependencies(address):
                ops.add_edge(forward[address], forward[dep])

        for address in deletes:
            for dep in state_graph.dependencies(address):
                if dep in deletes:
                    ops.add_edge(deletes[dep], deletes[address])
            for dependent in state_graph.dependents(address):
                if dependent in forward and dependent not in deletes:
                    ops.add_edge(deletes[address], forward[dependent])

        for address in replaced:
            ops.add_edge(forward[address], deletes[address])

        order = ops.topological_order(priority=priority.__getitem__)
        plan_entries = [
            replace(entries[key], position=position) for position, key in enumerate(order)
        ]
        dependencies = {key: frozenset(ops.dependencies(key)) for key in order}
        return Plan(entries=plan_entries, dependencies=dependencies, graph=graph)


def plan(
    graph: ResourceGraph,
    state: Mapping[Address, StateRecord],
    provider: ReplacementPolicy,
    force_replace: Collection[Address] = (),
) -> Plan:
    """Plan ``graph`` against ``state`` using ``provider``'s replacement rules."""
    return Planner(provider, force_replace).plan(graph, state)
