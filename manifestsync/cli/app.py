"""Main Typer application: imports and registers all CLI commands.

Entry point: ``manifestsync`` (configured via pyproject.toml scripts).

Commands: sync, check, status, publish, history, serve, verify-log.
"""

from __future__ import annotations

import logging

import typer

from manifestsync.cli.commands.publish_cmd import history_cmd, publish_cmd
from manifestsync.cli.commands.serve_cmd import serve_cmd, verify_log_cmd
from manifestsync.cli.commands.status_cmd import status_cmd
from manifestsync.cli.commands.sync_cmd import check_cmd, sync_cmd
from manifestsync.config import config

app = typer.Typer(
    name="manifestsync",
    help="manifestsync: distribute one canonical manifest to many repositories.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="sync", help="Update the local manifest if it is stale.")(sync_cmd)
app.command(name="check", help="Exit non-zero if the local manifest is stale.")(check_cmd)
app.command(name="status", help="Show what the local manifest last synced.")(status_cmd)
app.command(name="publish", help="Publish a new canonical manifest.")(publish_cmd)
app.command(name="history", help="List published revisions.")(history_cmd)
app.command(name="serve", help="Run the manifest service.")(serve_cmd)
app.command(name="verify-log", help="Verify the revision log and stored bodies.")(verify_log_cmd)


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr at the configured level."""
    level = logging.DEBUG if verbose else getattr(
        logging, config.log_level.upper(), logging.INFO
    )
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logging.basicConfig(level=level, handlers=[handler])


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    configure_logging(verbose)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
