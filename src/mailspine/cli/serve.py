"""
CLI: ``mail-spine serve`` — start the HTTP API (with background dispatch).
"""

from __future__ import annotations

import typer
import uvicorn

from mailspine.cli.utils import console, load_settings


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),  # noqa: UP007
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),  # noqa: UP007
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    no_background: bool = typer.Option(
        False, "--no-background", help="Serve the API without running the scheduler and workers"
    ),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the mail-spine REST API server."""
    from mailspine.api import create_app

    settings = load_settings(db, host=host, port=port, run_background=False if no_background else None)
    console.print(f"[bold green]Starting mail-spine API[/bold green] on {settings.host}:{settings.port}")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=log_level,
    )
