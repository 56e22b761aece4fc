"""InfraLayer: declarative infrastructure reconciliation."""

__version__ = "0.1.0"

from infralayer.core.errors import (  # noqa: E402
    CycleError,
    InfraLayerError,
    ProviderError,
    StateCommitError,
    UnresolvedReference,
    ValidationError,
)
from infralayer.execution import ApplyResult, Executor  # noqa: E402
from infralayer.planning import Action, Plan, PlanEntry, Planner  # noqa: E402
from infralayer.reconciler import Reconciler, RefreshResult, apply, plan  # noqa: E402
from infralayer.resources import (  # noqa: E402
    Address,
    PerIndex,
    Ref,
    Reference,
    ResourceDeclaration,
    Splat,
)

__all__ = [
    "Action",
    "Address",
    "ApplyResult",
    "CycleError",
    "Executor",
    "InfraLayerError",
    "PerIndex",
    "Plan",
    "PlanEntry",
    "Planner",
    "ProviderError",
    "Reconciler",
    "Ref",
    "Reference",
    "RefreshResult",
    "ResourceDeclaration",
    "Splat",
    "StateCommitError",
    "UnresolvedReference",
    "ValidationError",
    "__version__",
    "apply",
    "plan",
]
