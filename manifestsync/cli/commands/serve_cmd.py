"""``manifestsync serve`` and ``manifestsync verify-log``: service side."""

from __future__ import annotations

from typing import Optional

import typer
from rich.panel import Panel

from manifestsync.cli.commands import _common
from manifestsync.config import config
from manifestsync.core.content_store import ContentAddressedStore
from manifestsync.core.revision_log import RevisionLog
from manifestsync.errors import ExitCode, ManifestSyncError


def serve_cmd(
    host: Optional[str] = typer.Option(None, help="Bind address."),
    port: Optional[int] = typer.Option(None, help="Bind port."),
) -> None:
    """Run the manifest service."""
    import uvicorn

    from manifestsync.server.app import create_app

    try:
        app = create_app(settings=config)
    except ManifestSyncError as exc:
        raise _common.fail(exc, "phase=startup")

    host = host or config.host
    port = port or config.port
    _common.console.print(
        f"Serving manifests from [cyan]{config.database_path}[/cyan] "
        f"on http://{host}:{port}"
    )
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if config.debug else "info",
    )


def verify_log_cmd() -> None:
    """Verify the revision log's hash chain and every stored manifest body."""
    if not config.database_path.exists():
        _common.err_console.print(
            f"[bold red]Revision log not found:[/bold red] {config.database_path}"
        )
        raise typer.Exit(code=ExitCode.NOT_FOUND)

    log = RevisionLog(
        config.database_path, busy_timeout=config.sqlite_busy_timeout_seconds
    )
    store = ContentAddressedStore(config.store_path)

    try:
        log.verify_chain()
    except ManifestSyncError as exc:
        raise _common.fail(exc, f"db={config.database_path}")

    head = log.head()
    bad = [
        rev.sequence_number
        for rev in log.history(limit=max(head, 1))
        if not store.verify(rev.content_hash)
    ]
    if bad:
        _common.print_line(
            f"manifestsync: kind=store_integrity missing_or_corrupt_seqs={sorted(bad)}",
            error=True,
        )
        raise typer.Exit(code=ExitCode.INTEGRITY)

    _common.console.print(
        Panel(
            f"[green]Revision log intact[/green]: {head} revision(s), "
            f"all bodies verified.",
            title="verify-log",
        )
    )
