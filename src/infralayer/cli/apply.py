"""
CLI commands for applying a declaration and destroying managed resources.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from infralayer.cli.plan import print_plan_summary
from infralayer.cli.runtime import make_reconciler, resolve_settings
from infralayer.cli.ux import console, error, warning
from infralayer.core.errors import ExitCode, main_with_error_handling
from infralayer.declarations import load_declarations
from infralayer.execution import ApplyResult, EntryStatus
from infralayer.planning import Plan


def print_apply_summary(result: ApplyResult) -> None:
    """Print per-entry outcomes and a summary line."""
    console.print()
    for outcome in result.outcomes:
        if outcome.status is EntryStatus.NOOP:
            continue
        label = f"{outcome.action.value:<7}"
        if outcome.status is EntryStatus.APPLIED:
            extra = f" [muted]({outcome.provider_id})[/muted]" if outcome.provider_id else ""
            if outcome.replaced:
                extra += " [replace]replaced[/replace]"
            console.print(f"  [green]✓ {label}[/green] {outcome.address}{extra}")
        elif outcome.status is EntryStatus.FAILED:
            console.print(f"  [red]✗ {label}[/red] {outcome.address}: {outcome.error}")
        else:
            console.print(f"  [yellow]⚠ {label}[/yellow] {outcome.address} skipped ({outcome.error})")

    console.print()
    duration = f" in {result.duration_seconds:.1f}s"
    if result.success:
        console.print(
            f"[bold green]Applied {len(result.applied)} changes{duration}[/bold green] "
            f"[muted]({len(result.noop)} unchanged)[/muted]"
        )
    else:
        console.print(
            f"[bold yellow]Applied {len(result.applied)} changes with "
            f"{len(result.failed)} failed and {len(result.skipped)} skipped{duration}[/bold yellow]"
        )
        for address, cause in result.failed.items():
            error(f"{address}: {cause}")
        warning("Run apply again after fixing the failures; completed work is kept in state.")
    console.print()


def print_apply_json(plan: Plan, result: ApplyResult) -> None:
    print(json.dumps({"plan": plan.to_dict(), "result": result.to_dict()}, indent=2))


def _finish(plan: Plan, result: ApplyResult, output_format: str) -> int:
    if output_format == "json":
        print_apply_json(plan, result)
    else:
        print_apply_summary(result)
    return ExitCode.SUCCESS if result.success else ExitCode.PARTIAL_FAILURE


@main_with_error_handling()
def apply_command(
    declaration: str,
    state_path: Optional[str] = None,
    parallelism: Optional[int] = None,
    output_format: str = "text",
) -> int:
    """
    Plan the declaration and execute the plan.

    Returns:
        Exit code (0 for success, 1 when any entry failed or was skipped)
    """
    settings = resolve_settings(state_path, parallelism)
    declarations = load_declarations(declaration)
    reconciler = make_reconciler(settings)

    async def run() -> tuple[Plan, ApplyResult]:
        plan = await reconciler.plan(declarations)
        return plan, await reconciler.apply(plan)

    plan, result = asyncio.run(run())
    if output_format != "json":
        print_plan_summary(plan, title="Apply")
    return _finish(plan, result, output_format)


@main_with_error_handling()
def destroy_command(
    state_path: Optional[str] = None,
    parallelism: Optional[int] = None,
    output_format: str = "text",
) -> int:
    """Delete every resource recorded in state, dependents first."""
    settings = resolve_settings(state_path, parallelism)
    reconciler = make_reconciler(settings)

    async def run() -> tuple[Plan, ApplyResult]:
        plan = await reconciler.destroy_plan()
        return plan, await reconciler.apply(plan)

    plan, result = asyncio.run(run())
    if output_format != "json":
        print_plan_summary(plan, title="Destroy")
    return _finish(plan, result, output_format)
