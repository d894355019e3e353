"""Queue commands for OfflineSync CLI.

Commands:
- enqueue: Queue an operation
- status: Show queue and sync status
- usage: Show storage usage
- clear: Drop all pending operations and conflicts
"""

from __future__ import annotations

import json
import sys

import click

from offlinesync.client.cli.config import open_engine
from offlinesync.client.sync.types import OperationMethod, OperationType
from offlinesync.core.errors import UnsupportedOperationType


@click.command()
@click.argument("op_type", type=click.Choice([t.value for t in OperationType]))
@click.argument("payload", default="{}")
@click.option(
    "--method",
    "-m",
    type=click.Choice([m.value for m in OperationMethod]),
    default=OperationMethod.UPSERT.value,
    show_default=True,
    help="Write method.",
)
def enqueue(op_type: str, payload: str, method: str) -> None:
    """Queue an operation. PAYLOAD is a JSON object."""
    try:
        data = json.loads(payload)
    except ValueError as e:
        click.echo(f"Error: Invalid JSON payload: {e}", err=True)
        sys.exit(1)
    if not isinstance(data, dict):
        click.echo("Error: Payload must be a JSON object.", err=True)
        sys.exit(1)

    with open_engine() as engine:
        try:
            op_id = engine.queue_operation(op_type, data, method)
        except UnsupportedOperationType as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(f"Queued {op_type} {method}: {op_id}")
        click.echo(f"Pending operations: {len(engine.pending_operations)}")


@click.command()
def status() -> None:
    """Show pending operations, conflicts and last sync time."""
    with open_engine() as engine:
        last_sync = engine.last_sync_time
        click.echo(f"Status: {engine.status.value}")
        click.echo(f"Last sync: {last_sync.isoformat() if last_sync else 'never'}")
        click.echo(f"Pending operations: {len(engine.pending_operations)}")
        for op in engine.pending_operations:
            click.echo(f"  {op.id}  {op.type.value:<8} {op.method.value:<6} {op.timestamp}")
        click.echo(f"Conflicts: {len(engine.conflicts)}")


@click.command()
def usage() -> None:
    """Show storage used by offline data (KB)."""
    with open_engine() as engine:
        kb = engine.get_storage_usage().kilobytes()
    click.echo(f"Pending operations: {kb['pending_operations']} KB")
    click.echo(f"Offline data: {kb['offline_data']} KB")
    click.echo(f"Conflicts: {kb['conflicts']} KB")
    click.echo(f"Total: {kb['total']} KB")


@click.command()
@click.option("--force", is_flag=True, help="Skip confirmation prompt.")
def clear(force: bool) -> None:
    """Drop all pending operations and conflicts."""
    if not force and not click.confirm(
        "This discards every unsynced change. Continue?"
    ):
        click.echo("Aborted.")
        return
    with open_engine() as engine:
        count = len(engine.pending_operations)
        conflicts = len(engine.conflicts)
        engine.clear_pending_operations()
    click.echo(f"Cleared {count} pending operations and {conflicts} conflicts.")
