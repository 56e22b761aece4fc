"""Planning: diff declared resources against recorded state."""

from infralayer.planning.models import Action, Plan, PlanEntry, Reason
from infralayer.planning.planner import Planner, desired_hash, plan

__all__ = ["Action", "Plan", "PlanEntry", "Planner", "Reason", "desired_hash", "plan"]
