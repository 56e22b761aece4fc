"""Plan execution."""

from infralayer.execution.executor import Executor, apply
from infralayer.execution.results import ApplyResult, EntryOutcome, EntryStatus, ResultCollector

__all__ = [
    "ApplyResult",
    "EntryOutcome",
    "EntryStatus",
    "Executor",
    "ResultCollector",
    "apply",
]
