"""usage command: token consumption against the 24-hour ceiling."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("usage")
@click.option("--installation", "installation_id", required=True, type=int, help="GitHub App installation id.")
@click.pass_context
def usage_cmd(ctx, installation_id: int):
    """Show an organization's token usage over the last 24 hours."""
    from prwarden_server.cli import open_store
    from prwarden_store.ledger import TokenLedger

    store = open_store(ctx)
    organization = store.get_organization_by_installation(installation_id)
    if organization is None:
        raise click.ClickException(f"No organization recorded for installation {installation_id}.")

    ledger = TokenLedger(store, limit=ctx.obj["config"]["token_limit_per_24h"])
    used = ledger.usage(organization.id)
    remaining = ledger.remaining(organization.id)

    table = Table(title=f"Token usage for {organization.name} (last 24h)", show_header=True)
    table.add_column("Plan")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    style = "red" if remaining == 0 else "green"
    table.add_row(organization.plan, f"{used:,}", f"{ledger.limit:,}", f"[{style}]{remaining:,}[/{style}]")
    console.print(table)
