"""Configuration utilities for the OfflineSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from offlinesync.client.engine import OfflineSync
from offlinesync.core.config import ServerConfig, SyncConfig


def get_config_dir() -> Path:
    """Get the configuration directory for OfflineSync.

    Returns:
        Path to ~/.offlinesync or equivalent.
    """
    return Path.home() / ".offlinesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_store_path() -> Path:
    """Get the path to the durable queue database."""
    return get_config_dir() / "queue.db"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def open_engine() -> OfflineSync:
    """Build an engine from the saved configuration.

    Exits with an error if 'offlinesync configure' was never run.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("api_key"):
        click.echo(
            "Error: Not configured. Run 'offlinesync configure' first.", err=True
        )
        sys.exit(1)

    server_config = ServerConfig(
        server_url=config["server_url"],
        api_key=config["api_key"],
        token=config.get("token") or None,
    )
    sync_config = SyncConfig(namespace=config.get("namespace", "lumos"))
    engine = OfflineSync.open(get_store_path(), server_config, sync_config)
    if config.get("caller_id"):
        engine.set_caller(config["caller_id"])
    return engine
