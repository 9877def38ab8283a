"""CLI entry point for prwarden.

Commands:
  serve  : run the webhook server
  usage  : show an organization's token usage over the last 24 hours
  repos  : list the repositories recorded for an installation
"""

from __future__ import annotations

import importlib.metadata

import click
from rich.console import Console

from prwarden_server.commands.repos import repos_cmd
from prwarden_server.commands.serve import serve_cmd
from prwarden_server.commands.usage import usage_cmd

console = Console()


@click.group()
@click.version_option(
    version=importlib.metadata.version("prwarden"),
    prog_name="prwarden",
)
@click.option(
    "--config",
    "config_path",
    default=".prwarden.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRWARDEN_CONFIG",
)
@click.option(
    "--db-path",
    default=None,
    help="SQLite database file. Overrides db_path from the configuration file.",
    envvar="PRWARDEN_DB_PATH",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, db_path: str | None):
    """GitHub App that reviews pull requests with AI."""
    from prwarden_core.config import ConfigError, load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path, cli_overrides={"db_path": db_path})
    except ConfigError as e:
        raise click.UsageError(str(e))


def open_store(ctx: click.Context):
    """Open the configured store for a command and close it when the command ends.

    This factory lives in the CLI so neither prwarden_core nor prwarden_store
    know about the config format.
    """
    from prwarden_store.sqlite import SQLiteStore

    store = SQLiteStore(db_path=ctx.obj["config"]["db_path"])
    ctx.call_on_close(store.close)
    return store


main.add_command(serve_cmd)
main.add_command(usage_cmd)
main.add_command(repos_cmd)
