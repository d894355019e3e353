"""Sync commands for OfflineSync CLI.

Commands:
- sync: Push pending operations to the backend
- conflicts: List open conflicts
- resolve: Resolve a conflict
"""

from __future__ import annotations

import json
import sys

import click

from offlinesync.client.cli.config import open_engine
from offlinesync.core.errors import PassRejected


@click.command()
def sync() -> None:
    """Push pending operations to the backend."""
    with open_engine() as engine:
        if not engine.monitor.check():
            click.echo("Backend unreachable, operations stay queued.", err=True)
            sys.exit(1)

        try:
            result = engine.sync_now(strict=True)
        except PassRejected as e:
            click.echo(f"Nothing synced: {e.reason}.")
            return

        if result is None:
            click.echo("Nothing synced.")
            return
        click.echo(
            f"Synced {len(result.completed)} operations, "
            f"{len(result.conflicted)} conflicts, {len(result.failed)} failed."
        )
        if result.failed:
            click.echo("Failed operations stay queued for the next sync.", err=True)
            sys.exit(1)


@click.command()
def conflicts() -> None:
    """List open conflicts."""
    with open_engine() as engine:
        entries = engine.conflicts
        if not entries:
            click.echo("No conflicts.")
            return
        for entry in entries:
            op = entry.operation
            click.echo(f"{op.id}  {op.type.value} {op.method.value}")
            click.echo(f"  local:  {json.dumps(op.payload, sort_keys=True)}")
            click.echo(f"  server: {json.dumps(entry.server_data, sort_keys=True)}")


@click.command()
@click.argument("operation_id")
@click.option(
    "--keep",
    type=click.Choice(["local", "server"]),
    required=True,
    help="Version to keep.",
)
def resolve(operation_id: str, keep: str) -> None:
    """Resolve the conflict of OPERATION_ID."""
    with open_engine() as engine:
        if not engine.resolve_conflict(operation_id, keep):
            click.echo(f"No conflict for {operation_id}.", err=True)
            sys.exit(1)
    if keep == "local":
        click.echo(f"Re-queued {operation_id}; it will be retried on next sync.")
    else:
        click.echo(f"Discarded local change {operation_id}.")
