"""Result types for plan execution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Dict, List

from infralayer.core.errors import ReplaceRequired
from infralayer.planning.models import Action
from infralayer.resources.models import Address


class EntryStatus(StrEnum):
    APPLIED = "applied"
    NOOP = "noop"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class EntryOutcome:
    """What happened to one plan entry."""

    address: Address
    action: Action
    status: EntryStatus
    position: int = 0
    performed: Action | None = None
    replaced: bool = False
    provider_id: str | None = None
    error: str | None = None
    error_type: str | None = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "address": str(self.address),
            "action": self.action.value,
            "status": self.status.value,
        }
        if self.performed is not None and self.performed is not self.action:
            data["performed"] = self.performed.value
        if self.replaced:
            data["replaced"] = True
        if self.provider_id is not None:
            data["provider_id"] = self.provider_id
        if self.error is not None:
            data["error"] = self.error
            data["error_type"] = self.error_type
        return data


@dataclass
class ApplyResult:
    """Result of applying a plan."""

    outcomes: List[EntryOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0

    def _with_status(self, status: EntryStatus) -> List[EntryOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def applied(self) -> List[str]:
        """Addresses whose operation succeeded, in plan order."""
        return [str(o.address) for o in self._with_status(EntryStatus.APPLIED)]

    @property
    def noop(self) -> List[str]:
        return [str(o.address) for o in self._with_status(EntryStatus.NOOP)]

    @property
    def failed(self) -> Dict[str, str]:
        """Failed address -> cause."""
        return {str(o.address): o.error or "" for o in self._with_status(EntryStatus.FAILED)}

    @property
    def skipped(self) -> List[str]:
        return [str(o.address) for o in self._with_status(EntryStatus.SKIPPED)]

    @property
    def failed_at(self) -> str | None:
        """First failed address in plan order."""
        failed = self._with_status(EntryStatus.FAILED)
        return str(failed[0].address) if failed else None

    @property
    def success(self) -> bool:
        """Whether every entry was applied or needed nothing."""
        return not self._with_status(EntryStatus.FAILED) and not self._with_status(
            EntryStatus.SKIPPED
        )

    @property
    def replace_required(self) -> List[Address]:
        """Addresses refused an in-place update while other resources still use them."""
        return [
            o.address
            for o in self._with_status(EntryStatus.FAILED)
            if o.error_type == ReplaceRequired.__name__
        ]

    def outcome_for(self, address: Address | str, action: Action | None = None) -> EntryOutcome | None:
        for outcome in self.outcomes:
            if str(outcome.address) == str(address) and (action is None or outcome.action is action):
                return outcome
        return None

    def followed_by(self, retry: ApplyResult) -> ApplyResult:
        """
        Combine with a follow-up run over a re-planned declaration.

        Failed and skipped entries of this run are superseded by the retry.
        Retry no-ops for addresses already applied here are dropped.
        """
        applied = self._with_status(EntryStatus.APPLIED)
        applied_here = {o.address for o in applied}
        offset = len(self.outcomes)
        outcomes = applied + [
            replace(o, position=o.position + offset)
            for o in retry.outcomes
            if not (o.status is EntryStatus.NOOP and o.address in applied_here)
        ]
        return ApplyResult(
            outcomes=outcomes,
            duration_seconds=self.duration_seconds + retry.duration_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "duration_seconds": round(self.duration_seconds, 3),
            "applied": self.applied,
            "noop": self.noop,
            "failed": self.failed,
            "failed_at": self.failed_at,
            "skipped": self.skipped,
            "entries": [o.to_dict() for o in self.outcomes],
        }


class ResultCollector:
    """Aggregates entry outcomes during execution."""

    def __init__(self) -> None:
        self._outcomes: List[EntryOutcome] = []

    def record(self, outcome: EntryOutcome) -> None:
        self._outcomes.append(outcome)

    def finalize(self, duration: float) -> ApplyResult:
        """Return the final result in plan order with duration set."""
        outcomes = sorted(self._outcomes, key=lambda o: o.position)
        return ApplyResult(outcomes=outcomes, duration_seconds=duration)
