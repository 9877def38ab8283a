"""serve command: run the webhook server under uvicorn."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

console = Console()


@click.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="info",
    show_default=True,
)
@click.pass_context
def serve_cmd(ctx, host: str, port: int, log_level: str):
    """Receive GitHub webhooks and review pull requests."""
    import uvicorn

    from prwarden_core.config import ConfigError
    from prwarden_server.app import build_router, create_app

    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

    config = ctx.obj["config"]
    try:
        router = build_router(config)
    except ConfigError as e:
        raise click.ClickException(str(e))

    app = create_app(router, config["webhook_secret"], webhook_path=config["webhook_path"])
    console.print(
        f"[bold]prwarden[/bold] listening on [cyan]http://{host}:{port}{config['webhook_path']}[/cyan] "
        f"(provider: {config['ai_provider']}, limit: {config['token_limit_per_24h']:,} tokens/24h)"
    )
    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level, log_config=None)
    finally:
        router.store.close()
