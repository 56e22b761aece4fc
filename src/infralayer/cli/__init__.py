"""
CLI commands for InfraLayer.
"""

from infralayer.cli.apply import apply_command, destroy_command
from infralayer.cli.plan import plan_command
from infralayer.cli.state import refresh_command, state_command

__all__ = [
    "apply_command",
    "destroy_command",
    "plan_command",
    "refresh_command",
    "state_command",
]
