"""``manifestsync sync`` and ``manifestsync check``: the hook integration.

``sync`` exits 0 when the local manifest is unchanged or was updated and a
distinct non-zero code per failure class otherwise (see ``ExitCode``).
``check`` never writes; it exits 0 when the local copy is current and
``ExitCode.STALE`` when a newer revision is published.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from manifestsync.cli.commands import _common
from manifestsync.client.fetch_client import FetchClient
from manifestsync.client.orchestrator import SyncOrchestrator
from manifestsync.client.replica import LocalReplica
from manifestsync.config import config
from manifestsync.core.production_guard import enforce_production_constraints
from manifestsync.errors import ExitCode, ManifestSyncError
from manifestsync.models.replica import SyncStatus


def sync_cmd(
    url: Optional[str] = typer.Argument(
        None,
        help="Base URL of the manifest service. Defaults to MANIFESTSYNC_REMOTE_URL.",
    ),
    path: Optional[Path] = typer.Argument(
        None,
        help="Local manifest file. Defaults to MANIFESTSYNC_MANIFEST_PATH.",
    ),
    attempts: Optional[int] = typer.Option(
        None, "--attempts", help="Maximum sync attempts.", min=1
    ),
    budget: Optional[float] = typer.Option(
        None, "--budget", help="Wall-clock budget in seconds."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Per-request timeout in seconds."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Print nothing on success."
    ),
) -> None:
    """Fetch the canonical manifest if the local copy is stale."""
    url = url or config.remote_url
    path = path or config.manifest_path

    try:
        enforce_production_constraints(config, remote_url=url)
    except ManifestSyncError as exc:
        raise _common.fail(exc, f"url={url}")

    request_timeout = timeout or config.request_timeout_seconds
    with _common.http_client(url, request_timeout) as http:
        orchestrator = SyncOrchestrator(
            FetchClient(http),
            max_attempts=attempts or config.max_attempts,
            budget_seconds=budget or config.budget_seconds,
            request_timeout=request_timeout,
            backoff_base=config.backoff_base_seconds,
            backoff_max=config.backoff_max_seconds,
            lock_timeout=config.lock_timeout_seconds,
            lock_stale_after=config.lock_stale_seconds,
        )
        report = orchestrator.run(LocalReplica(path, source_url=url))

    if not report.ok:
        _common.print_line(report.diagnostic(), error=True)
        raise typer.Exit(code=report.exit_code)

    if not quiet:
        if report.result.status is SyncStatus.UPDATED:
            _common.console.print(
                f"[green]Updated[/green] {path} to revision "
                f"{report.result.sequence_number}"
            )
        _common.print_line(report.diagnostic())


def check_cmd(
    url: Optional[str] = typer.Argument(
        None,
        help="Base URL of the manifest service. Defaults to MANIFESTSYNC_REMOTE_URL.",
    ),
    path: Optional[Path] = typer.Argument(
        None,
        help="Local manifest file. Defaults to MANIFESTSYNC_MANIFEST_PATH.",
    ),
) -> None:
    """Report whether the local manifest matches the canonical one."""
    url = url or config.remote_url
    path = path or config.manifest_path
    replica = LocalReplica(path, source_url=url)

    try:
        with _common.http_client(url, config.request_timeout_seconds) as http:
            current, latest = FetchClient(http).check(replica)
    except ManifestSyncError as exc:
        raise _common.fail(exc, f"url={url} path={path}")

    if current:
        _common.print_line(
            f"manifestsync: status=current seq={latest.sequence_number} path={path}"
        )
        return

    _common.print_line(
        f"manifestsync: status=stale latest_seq={latest.sequence_number} "
        f"hash={latest.content_hash[:12]} path={path}",
        error=True,
    )
    raise typer.Exit(code=ExitCode.STALE)
