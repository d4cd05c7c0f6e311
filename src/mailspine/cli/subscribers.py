"""
CLI: ``mail-spine subscribers`` — import and list recipients.
"""

from __future__ import annotations

from pathlib import Path

import typer

from mailspine.cli.utils import cli_errors, console, open_store, output_items, output_record
from mailspine.ops import subscribers as subscriber_ops

app = typer.Typer(no_args_is_help=True)


@app.command("import")
def import_csv(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="CSV file"),
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Import subscribers from a CSV file (first column is the address)."""
    with cli_errors(), open_store(db) as store, path.open(newline="", encoding="utf-8-sig") as fh:
        result = subscriber_ops.import_subscribers(store, fh)
    if as_json:
        output_record(result, as_json=True)
        return
    console.print(f"[green]Added {result.added}[/green], skipped {result.skipped}")


@app.command("list")
def list_subscribers(
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List subscribers in creation order."""
    with cli_errors(), open_store(db) as store:
        output_items(subscriber_ops.list_subscribers(store), as_json=as_json, title="Subscribers")
