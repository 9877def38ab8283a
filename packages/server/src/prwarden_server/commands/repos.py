"""repos command: repositories recorded for an installation."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("repos")
@click.option("--installation", "installation_id", required=True, type=int, help="GitHub App installation id.")
@click.pass_context
def repos_cmd(ctx, installation_id: int):
    """List repositories and whether prwarden reviews them."""
    from prwarden_server.cli import open_store

    store = open_store(ctx)
    organization = store.get_organization_by_installation(installation_id)
    if organization is None:
        raise click.ClickException(f"No organization recorded for installation {installation_id}.")

    repositories = store.list_repositories(organization.id)
    if not repositories:
        console.print("[yellow]No repositories recorded for this installation.[/yellow]")
        return

    table = Table(title=f"Repositories for {organization.name}", show_header=True)
    table.add_column("Repository")
    table.add_column("Visibility")
    table.add_column("Status")
    for repo in repositories:
        visibility = "private" if repo.private else "public"
        status = "[green]enabled[/green]" if repo.is_enabled else "[dim]disabled[/dim]"
        table.add_row(repo.full_name, visibility, status)
    console.print(table)
