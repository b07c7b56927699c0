"""``manifestsync status [PATH]``: show what the local replica last synced."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from manifestsync.cli.commands._common import console
from manifestsync.client.replica import LocalReplica
from manifestsync.config import config


def status_cmd(
    path: Optional[Path] = typer.Argument(
        None,
        help="Local manifest file. Defaults to MANIFESTSYNC_MANIFEST_PATH.",
    ),
) -> None:
    """Show the sidecar state of a local manifest."""
    replica = LocalReplica(path or config.manifest_path)
    state = replica.load_state()

    if state is None:
        console.print(f"[dim]{replica.path} has never been synced.[/dim]")
        return

    intact = replica.matches(state.content_hash)

    table = Table(title=f"Local manifest: {replica.path}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Sequence", str(state.sequence_number))
    table.add_row("Content hash", state.content_hash)
    table.add_row("Source", state.source_url or "-")
    table.add_row("Synced at", state.synced_at.isoformat())
    table.add_row(
        "File matches",
        "[green]Yes[/green]" if intact else "[yellow]No (will be restored on next sync)[/yellow]",
    )
    console.print(table)
