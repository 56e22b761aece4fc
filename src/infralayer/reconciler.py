"""
Reconciler facade.

Ties the graph builder, state store, planner and executor together for the
CLI and for library callers.

Example:
    >>> reconciler = Reconciler(InMemoryCloudProvider(), InMemoryStateStore())
    >>> plan = await reconciler.plan(declarations)
    >>> result = await reconciler.apply(plan)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

import structlog

from infralayer.config import Settings, get_settings
from infralayer.core.errors import NotFoundError
from infralayer.execution import ApplyResult, Executor
from infralayer.planning import Plan, Planner
from infralayer.providers.base import ProviderAdapter
from infralayer.resources.builder import ResourceGraph, build
from infralayer.resources.models import Address, ResourceDeclaration
from infralayer.state.models import TOMBSTONE, StateRecord
from infralayer.state.store import StateStore

logger = structlog.get_logger()


@dataclass
class RefreshResult:
    """Outcome of reading recorded resources back from the provider."""

    refreshed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def drifted(self) -> bool:
        return bool(self.refreshed or self.removed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "refreshed": self.refreshed,
            "removed": self.removed,
            "unchanged": self.unchanged,
        }


class Reconciler:
    """Plans and applies declarations against one provider and state store."""

    def __init__(
        self,
        provider: ProviderAdapter,
        store: StateStore,
        settings: Settings | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.settings = settings or get_settings()

    async def plan(self, declarations: Iterable[ResourceDeclaration]) -> Plan:
        """Build the graph, load state once and plan against it."""
        graph = build(declarations)
        state = await self.store.load()
        return Planner(self.provider).plan(graph, state)

    async def destroy_plan(self) -> Plan:
        """Plan the deletion of everything in state."""
        state = await self.store.load()
        return Planner(self.provider).plan(ResourceGraph.empty(), state)

    def _executor(self) -> Executor:
        return Executor(
            self.provider,
            self.store,
            max_parallelism=self.settings.max_parallelism,
            commit_attempts=self.settings.state_commit_attempts,
            commit_backoff=self.settings.state_commit_backoff_seconds,
        )

    async def apply(self, plan: Plan) -> ApplyResult:
        """
        Execute ``plan``.

        A resource the provider cannot update in place while others still use
        it fails with ``ReplaceRequired``. The declaration is then planned
        again with that resource forced to replacement, so its dependents are
        deleted before it and recreated after it, and the new plan is applied
        in the same call.
        """
        result = await self._executor().apply(plan)
        forced: set[Address] = set()
        while plan.graph is not None and set(result.replace_required) - forced:
            forced.update(result.replace_required)
            logger.info("replan_for_replace", addresses=sorted(str(a) for a in forced))
            state = await self.store.load()
            plan = Planner(self.provider, force_replace=forced).plan(plan.graph, state)
            result = result.followed_by(await self._executor().apply(plan))
        return result

    async def refresh(self) -> RefreshResult:
        """
        Re-read every recorded resource through the provider.

        Objects the provider no longer knows are dropped from state so the
        next plan recreates them. Changed outputs are stored without touching
        ``last_applied_hash``. Infrastructure is never modified.
        """
        result = RefreshResult()
        state = await self.store.load()
        for address, record in state.items():
            try:
                outputs = await self.provider.read(record.kind, record.provider_id)
            except NotFoundError:
                logger.warning(
                    "resource_vanished", address=str(address), provider_id=record.provider_id
                )
                await self.store.commit(address, TOMBSTONE)
                result.removed.append(str(address))
                continue

            if outputs == record.outputs:
                result.unchanged.append(str(address))
                continue
            await self.store.commit(address, replace(record, outputs=dict(outputs)))
            result.refreshed.append(str(address))

        logger.info(
            "refresh_finished",
            refreshed=len(result.refreshed),
            removed=len(result.removed),
            unchanged=len(result.unchanged),
        )
        return result


def plan(
    declarations: Iterable[ResourceDeclaration],
    state: Mapping[Address, StateRecord],
    provider: ProviderAdapter,
) -> Plan:
    """Plan ``declarations`` against an already loaded ``state``."""
    return Planner(provider).plan(build(declarations), state)


async def apply(
    plan: Plan,
    provider: ProviderAdapter,
    store: StateStore,
    settings: Settings | None = None,
) -> ApplyResult:
    """Apply ``plan`` using execution settings from ``settings``."""
    return await Reconciler(provider, store, settings).apply(plan)
