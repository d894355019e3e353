"""Command-line interface for OfflineSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save backend URL, keys and caller identity
- enqueue: Queue an operation
- status: Show queue and sync status
- sync: Push pending operations to the backend
- conflicts: List open conflicts
- resolve: Resolve a conflict
- clear: Drop all pending operations and conflicts
- usage: Show storage usage
"""

from __future__ import annotations

import logging

import click

from offlinesync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_store_path,
    load_config,
    open_engine,
    save_config,
)
from offlinesync.client.cli.configure import configure
from offlinesync.client.cli.queue import clear, enqueue, status, usage
from offlinesync.client.cli.sync import conflicts, resolve, sync


@click.group()
@click.version_option(package_name="offlinesync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """OfflineSync - offline-first operation queue."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Setup
cli.add_command(configure)

# Queue commands
cli.add_command(enqueue)
cli.add_command(status)
cli.add_command(usage)
cli.add_command(clear)

# Sync commands
cli.add_command(sync)
cli.add_command(conflicts)
cli.add_command(resolve)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_store_path",
    "load_config",
    "open_engine",
    "save_config",
]
