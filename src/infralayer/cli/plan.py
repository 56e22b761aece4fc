"""
CLI command for planning (dry-run) a declaration against recorded state.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from infralayer.cli.runtime import make_reconciler, resolve_settings
from infralayer.cli.ux import console, header, info, print_table, success
from infralayer.core.errors import main_with_error_handling
from infralayer.declarations import load_declarations
from infralayer.planning import Action, Plan, PlanEntry

_SYMBOLS = {
    Action.CREATE: ("+", "create"),
    Action.UPDATE: ("~", "update"),
    Action.DELETE: ("-", "delete"),
    Action.NOOP: (" ", "muted"),
}


def describe_entry(entry: PlanEntry) -> list[str]:
    """Table row for one plan entry."""
    symbol, style = _SYMBOLS[entry.action]
    if entry.is_replacement:
        style = "replace"
    action = f"[{style}]{symbol} {entry.action.value}[/{style}]"
    note = entry.reason.value if entry.reason else ""
    if entry.changed:
        changed = ", ".join(entry.changed)
        note = f"{note} ({changed})" if note else changed
    return [str(entry.position + 1), action, str(entry.address), note]


def print_plan_summary(plan: Plan, title: str = "Plan", show_noop: bool = False) -> None:
    """Print plan entries grouped by order with a per-action summary."""
    header(title)

    if not plan.has_changes:
        success("No changes. Infrastructure matches the declaration.")
        console.print()
        return

    rows = [describe_entry(e) for e in plan.entries if show_noop or e.action is not Action.NOOP]
    print_table("", ["#", "Action", "Address", "Reason"], rows)

    summary = plan.summary()
    console.print()
    console.print(
        f"[bold]Plan:[/bold] [create]{summary['create']} to create[/create], "
        f"[update]{summary['update']} to update[/update], "
        f"[delete]{summary['delete']} to delete[/delete] "
        f"([replace]{summary['replace']} replaced[/replace], "
        f"[muted]{summary['noop']} unchanged[/muted])"
    )
    console.print()


def print_plan_json(plan: Plan) -> None:
    """Print plan in JSON format."""
    print(json.dumps(plan.to_dict(), indent=2))


@main_with_error_handling()
def plan_command(
    declaration: str,
    state_path: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
) -> int:
    """
    Preview the operations apply would perform.

    Args:
        declaration: Path to the declaration YAML file
        state_path: State file path (defaults to settings)
        output_format: Output format (text, json)
        verbose: Also list unchanged resources

    Returns:
        Exit code (0 for success)
    """
    settings = resolve_settings(state_path)
    declarations = load_declarations(declaration)
    plan = asyncio.run(make_reconciler(settings).plan(declarations))

    if output_format == "json":
        print_plan_json(plan)
    else:
        print_plan_summary(plan, show_noop=verbose)
        if plan.has_changes:
            info(f"To apply: infralayer apply {declaration}")
            console.print()

    return 0
