"""
Plan executor.

Runs plan entries against a provider, committing state after every
successful operation. Independent entries run concurrently up to
``max_parallelism``; with a limit of 1 entries run strictly in plan order.

A failed entry does not stop the run. Entries that depend on it, directly
or through other skipped entries, are marked skipped; everything else
continues.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from infralayer.core.errors import (
    NotFoundError,
    ProviderError,
    ReplaceRequired,
    StateCommitError,
    UpdateUnsupported,
)
from infralayer.execution.results import ApplyResult, EntryOutcome, EntryStatus, ResultCollector
from infralayer.graph.dag import DependencyGraph
from infralayer.graph.references import iter_references, resolve_value
from infralayer.planning.models import Action, EntryKey, Plan, PlanEntry
from infralayer.planning.planner import desired_hash
from infralayer.providers.base import ProviderAdapter
from infralayer.resources.models import Address
from infralayer.state.models import TOMBSTONE, StateRecord
from infralayer.state.store import CommitValue, StateStore

logger = structlog.get_logger()

_BLOCKING = (EntryStatus.FAILED, EntryStatus.SKIPPED)
_DONE = (EntryStatus.APPLIED, EntryStatus.NOOP)


class Executor:
    """Applies plans through a provider adapter and a state store."""

    def __init__(
        self,
        provider: ProviderAdapter,
        store: StateStore,
        *,
        max_parallelism: int = 1,
        commit_attempts: int = 5,
        commit_backoff: float = 0.2,
    ) -> None:
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        if commit_attempts < 1:
            raise ValueError("commit_attempts must be at least 1")
        self._provider = provider
        self._store = store
        self._max_parallelism = max_parallelism
        self._commit_attempts = commit_attempts
        self._commit_backoff = commit_backoff
        self._records: dict[Address, StateRecord] = {}

    async def apply(self, plan: Plan) -> ApplyResult:
        """
        Execute ``plan`` and return per-entry outcomes.

        Provider failures are recorded on the result rather than raised.
        The state store is re-loaded first so resolution uses the latest
        committed outputs.
        """
        started = time.monotonic()
        self._records = await self._store.load()
        collector = ResultCollector()
        status: dict[EntryKey, EntryStatus] = {}
        pending = list(plan.entries)
        running: dict[asyncio.Task[EntryOutcome], PlanEntry] = {}

        logger.info("apply_started", entries=len(plan), max_parallelism=self._max_parallelism)

        while pending or running:
            pending = self._skip_blocked(plan, pending, status, collector)

            for entry in list(pending):
                if len(running) >= self._max_parallelism:
                    break
                if all(status.get(key) in _DONE for key in plan.depends_on(entry)):
                    pending.remove(entry)
                    running[asyncio.create_task(self._run(entry))] = entry

            if not running:
                break

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                entry = running.pop(task)
                outcome = task.result()
                status[entry.key] = outcome.status
                collector.record(outcome)

        for entry in pending:
            collector.record(self._skipped(entry, "dependencies never completed"))

        result = collector.finalize(time.monotonic() - started)
        logger.info(
            "apply_finished",
            success=result.success,
            applied=len(result.applied),
            noop=len(result.noop),
            failed=len(result.failed),
            skipped=len(result.skipped),
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    def _skip_blocked(
        self,
        plan: Plan,
        pending: list[PlanEntry],
        status: dict[EntryKey, EntryStatus],
        collector: ResultCollector,
    ) -> list[PlanEntry]:
        # Plan order puts dependencies first, so one pass reaches transitive dependents
        remaining = []
        for entry in pending:
            blockers = sorted(
                f"{address}:{action.value}"
                for address, action in plan.depends_on(entry)
                if status.get((address, action)) in _BLOCKING
            )
            if blockers:
                status[entry.key] = EntryStatus.SKIPPED
                collector.record(self._skipped(entry, f"blocked by {', '.join(blockers)}"))
            else:
                remaining.append(entry)
        return remaining

    def _skipped(self, entry: PlanEntry, why: str) -> EntryOutcome:
        logger.warning(
            "entry_skipped", address=str(entry.address), action=entry.action.value, reason=why
        )
        return EntryOutcome(
            address=entry.address,
            action=entry.action,
            status=EntryStatus.SKIPPED,
            position=entry.position,
            error=why,
        )

    async def _run(self, entry: PlanEntry) -> EntryOutcome:
        log = logger.bind(address=str(entry.address), action=entry.action.value)
        outcome = EntryOutcome(
            address=entry.address,
            action=entry.action,
            status=EntryStatus.APPLIED,
            position=entry.position,
            performed=entry.action,
        )
        try:
            if entry.action is Action.DELETE:
                await self._delete(entry, outcome)
            elif entry.action is Action.CREATE:
                await self._create(entry, outcome)
            elif entry.action is Action.UPDATE:
                await self._update(entry, outcome)
            else:
                await self._noop(entry, outcome)
        except Exception as exc:
            outcome.status = EntryStatus.FAILED
            outcome.error = str(exc)
            outcome.error_type = type(exc).__name__
            outcome.details = dict(getattr(exc, "details", {}))
            log.error("entry_failed", error_type=outcome.error_type, error=outcome.error)
            return outcome

        if outcome.status is EntryStatus.APPLIED:
            log.info(
                "entry_applied",
                performed=outcome.performed.value if outcome.performed else None,
                provider_id=outcome.provider_id,
            )
        return outcome

    def _resolve(self, entry: PlanEntry) -> dict[str, Any]:
        resource = entry.resource
        if resource is None:
            raise ProviderError(f"{entry.address} has no declaration to apply")

        def lookup(target: Address, output: str) -> Any:
            record = self._records.get(target)
            if record is None:
                raise ProviderError(
                    f"{entry.address} needs {target}.{output} but {target} is not in state",
                    {"target": str(target), "output": output},
                )
            if output not in record.outputs:
                raise ProviderError(
                    f"{target} has no output {output!r}",
                    {"target": str(target), "output": output},
                )
            return record.outputs[output]

        return resolve_value(resource.attributes, lookup)

    def _dependencies(self, entry: PlanEntry) -> tuple[Address, ...]:
        if entry.resource is None:
            return ()
        targets = {ref.target for _, ref in iter_references(entry.resource.attributes)}
        return tuple(sorted(targets, key=str))

    async def _create(self, entry: PlanEntry, outcome: EntryOutcome) -> None:
        attributes = self._resolve(entry)
        kind = entry.address.kind
        provider_id, outputs = await self._provider.create(kind, attributes)
        outcome.provider_id = provider_id
        record = StateRecord(
            address=entry.address,
            kind=kind,
            provider_id=provider_id,
            attribute_snapshot=attributes,
            outputs=dict(outputs),
            dependencies=self._dependencies(entry),
            last_applied_hash=desired_hash(kind, attributes),
        )
        await self._commit(entry.address, record, provider_id)

    async def _update(self, entry: PlanEntry, outcome: EntryOutcome) -> None:
        record = self._records.get(entry.address)
        if record is None:
            outcome.performed = Action.CREATE
            await self._create(entry, outcome)
            return
        attributes = self._resolve(entry)
        await self._update_record(entry, record, attributes, outcome)

    async def _update_record(
        self,
        entry: PlanEntry,
        record: StateRecord,
        attributes: dict[str, Any],
        outcome: EntryOutcome,
    ) -> None:
        kind = entry.address.kind
        outcome.provider_id = record.provider_id
        try:
            outputs = await self._provider.update(kind, record.provider_id, attributes)
        except UpdateUnsupported as exc:
            dependents = DependencyGraph.from_state(self._records).transitive_dependents(
                entry.address
            )
            if dependents:
                raise ReplaceRequired(
                    f"{entry.address} cannot be updated in place and is still used by "
                    f"{len(dependents)} resources; its replacement has to be planned",
                    {
                        "address": str(entry.address),
                        "provider_id": record.provider_id,
                        "dependents": sorted(str(address) for address in dependents),
                        "reason": exc.message,
                    },
                ) from exc
            logger.info(
                "replace_on_update",
                address=str(entry.address),
                provider_id=record.provider_id,
                reason=exc.message,
            )
            await self._delete_record(record)
            outcome.replaced = True
            await self._create(entry, outcome)
            return

        updated = replace(
            record,
            attribute_snapshot=attributes,
            outputs=dict(outputs),
            dependencies=self._dependencies(entry),
            last_applied_hash=desired_hash(kind, attributes),
        )
        await self._commit(entry.address, updated, record.provider_id)

    async def _noop(self, entry: PlanEntry, outcome: EntryOutcome) -> None:
        # Upstream outputs may have changed since planning
        record = self._records.get(entry.address)
        if record is None:
            outcome.performed = Action.CREATE
            await self._create(entry, outcome)
            return
        attributes = self._resolve(entry)
        outcome.provider_id = record.provider_id
        if desired_hash(entry.address.kind, attributes) == record.last_applied_hash:
            outcome.status = EntryStatus.NOOP
            return
        logger.info("noop_upgraded", address=str(entry.address))
        outcome.performed = Action.UPDATE
        await self._update_record(entry, record, attributes, outcome)

    async def _delete(self, entry: PlanEntry, outcome: EntryOutcome) -> None:
        record = self._records.get(entry.address)
        if record is None:
            return
        outcome.provider_id = record.provider_id
        await self._delete_record(record)

    async def _delete_record(self, record: StateRecord) -> None:
        try:
            await self._provider.delete(record.kind, record.provider_id)
        except NotFoundError:
            logger.info(
                "delete_not_found", address=str(record.address), provider_id=record.provider_id
            )
        await self._commit(record.address, TOMBSTONE, record.provider_id)

    async def _commit(self, address: Address, value: CommitValue, provider_id: str) -> None:
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "state_commit_retry",
                address=str(address),
                attempt=retry_state.attempt_number,
                error=str(exc),
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._commit_attempts),
                wait=wait_exponential(multiplier=self._commit_backoff, max=10),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    await self._store.commit(address, value)
        except Exception as exc:
            if value is not TOMBSTONE:
                logger.error(
                    "orphaned_resource",
                    address=str(address),
                    provider_id=provider_id,
                    error=str(exc),
                )
            raise StateCommitError(
                f"Failed to record {address} in state after {self._commit_attempts} attempts: {exc}",
                {
                    "address": str(address),
                    "provider_id": provider_id,
                    "attempts": self._commit_attempts,
                },
            ) from exc

        if value is TOMBSTONE:
            self._records.pop(address, None)
        elif isinstance(value, StateRecord):
            self._records[address] = value


async def apply(
    plan: Plan,
    provider: ProviderAdapter,
    store: StateStore,
    *,
    max_parallelism: int = 1,
    commit_attempts: int = 5,
    commit_backoff: float = 0.2,
) -> ApplyResult:
    """Apply ``plan`` with a one-off executor."""
    executor = Executor(
        provider,
        store,
        max_parallelism=max_parallelism,
        commit_attempts=commit_attempts,
        commit_backoff=commit_backoff,
    )
    return await executor.apply(plan)
