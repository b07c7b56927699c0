"""Shared console objects and helpers for CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from manifestsync.client.read_surface import HttpManifestClient
from manifestsync.errors import ManifestSyncError

console = Console()
err_console = Console(stderr=True)


def http_client(url: str, timeout: float) -> HttpManifestClient:
    """Build the HTTP client used by commands (patched in tests)."""
    return HttpManifestClient(url, timeout=timeout)


def print_line(line: str, *, error: bool = False) -> None:
    """Print a plain, unwrapped line (diagnostics must stay greppable)."""
    target = err_console if error else console
    target.print(line, markup=False, highlight=False, soft_wrap=True)


def fail(exc: ManifestSyncError, context: str) -> typer.Exit:
    """Print a one-line diagnostic for *exc* and return the Exit to raise."""
    detail = " ".join(str(exc).split())
    print_line(f"manifestsync: kind={exc.kind} {context} detail={detail!r}", error=True)
    return typer.Exit(code=exc.exit_code)
