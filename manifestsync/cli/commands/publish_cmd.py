"""``manifestsync publish`` and ``manifestsync history``: write-surface client.

Publishing is normally driven by merge automation; this command is the
same request shape, usable from a shell or a CI job.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from manifestsync.cli.commands import _common
from manifestsync.config import config
from manifestsync.errors import ManifestSyncError


def publish_cmd(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Manifest file to publish.",
    ),
    author: str = typer.Option(
        ..., "--author", "-a", help="Identifier recorded with the revision."
    ),
    url: Optional[str] = typer.Option(
        None, "--url", help="Base URL of the manifest service."
    ),
) -> None:
    """Publish FILE as the new canonical manifest."""
    url = url or config.remote_url
    content = file.read_bytes()

    try:
        with _common.http_client(url, config.request_timeout_seconds) as http:
            receipt = http.publish(content, author)
    except ManifestSyncError as exc:
        raise _common.fail(exc, f"url={url} file={file}")

    _common.console.print(
        f"[green]Published[/green] revision {receipt.sequence_number} "
        f"({receipt.content_hash[:12]}) from {file}"
    )


def history_cmd(
    url: Optional[str] = typer.Option(
        None, "--url", help="Base URL of the manifest service."
    ),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=500),
) -> None:
    """List the most recent manifest revisions."""
    url = url or config.remote_url
    try:
        with _common.http_client(url, config.request_timeout_seconds) as http:
            revisions = http.history(limit=limit)
    except ManifestSyncError as exc:
        raise _common.fail(exc, f"url={url}")

    if not revisions:
        _common.console.print("[dim]No revisions published.[/dim]")
        return

    table = Table(title="Manifest history")
    table.add_column("Seq", justify="right", style="cyan")
    table.add_column("Hash")
    table.add_column("Author", style="green")
    table.add_column("Created")
    table.add_column("Bytes", justify="right")
    for rev in revisions:
        table.add_row(
            str(rev.sequence_number),
            rev.content_hash[:12],
            rev.author,
            rev.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(rev.size_bytes),
        )
    _common.console.print(table)
