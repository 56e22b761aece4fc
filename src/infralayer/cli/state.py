"""
CLI commands for inspecting and refreshing recorded state.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from infralayer.cli.runtime import make_reconciler, resolve_settings
from infralayer.cli.ux import console, header, print_table, success, warning
from infralayer.core.errors import main_with_error_handling
from infralayer.state import JsonStateStore


@main_with_error_handling()
def state_command(state_path: Optional[str] = None, output_format: str = "text") -> int:
    """Show the recorded state document."""
    settings = resolve_settings(state_path)
    store = JsonStateStore(settings.state_path)

    if output_format == "json":
        print(store.render(), end="")
        return 0

    document = store.read_document()
    header(f"State: {store.path} (serial {document.serial})")
    if not document.resources:
        warning("State is empty")
        return 0

    rows = [
        [address, record.kind, record.provider_id, ", ".join(record.dependencies)]
        for address, record in sorted(document.resources.items())
    ]
    print_table("", ["Address", "Kind", "Provider ID", "Depends on"], rows)
    return 0


@main_with_error_handling()
def refresh_command(state_path: Optional[str] = None, output_format: str = "text") -> int:
    """Re-read recorded resources from the provider and update state outputs."""
    settings = resolve_settings(state_path)
    result = asyncio.run(make_reconciler(settings).refresh())

    if output_format == "json":
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    header("Refresh")
    for address in result.refreshed:
        console.print(f"  [update]~ refreshed[/update] {address}")
    for address in result.removed:
        console.print(f"  [delete]- removed[/delete]   {address} [muted](no longer exists)[/muted]")
    if not result.drifted:
        success(f"{len(result.unchanged)} resources unchanged")
    console.print()
    return 0
