"""Configure command for OfflineSync CLI.

Commands:
- configure: Save backend URL, keys and caller identity
"""

from __future__ import annotations

import click

from offlinesync.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option(
    "--server",
    required=True,
    help="Backend URL (e.g., https://xyz.supabase.co).",
)
@click.option("--api-key", required=True, help="Project API key.")
@click.option("--caller", "caller_id", default=None, help="Id of the signed-in user.")
@click.option("--token", default=None, help="Bearer token of the signed-in user.")
@click.option("--namespace", default=None, help="Prefix of the store keys.")
def configure(
    server: str,
    api_key: str,
    caller_id: str | None,
    token: str | None,
    namespace: str | None,
) -> None:
    """Save connection settings for the backend."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["api_key"] = api_key
    if caller_id:
        config["caller_id"] = caller_id
    if token:
        config["token"] = token
    if namespace:
        config["namespace"] = namespace
    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")
