"""
CLI utility helpers — settings, store access and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from mailspine.core.errors import MailSpineError
from mailspine.core.logging import configure_logging
from mailspine.core.settings import MailSpineSettings, get_settings
from mailspine.core.store import MailStore

console = Console()
err_console = Console(stderr=True)


# ── Settings / store helpers ─────────────────────────────────────────────


def load_settings(database: str | None = None, **overrides: Any) -> MailSpineSettings:
    """Settings from the environment with command-line overrides applied."""
    updates = {k: v for k, v in overrides.items() if v is not None}
    if database:
        updates["database_path"] = database
    settings = get_settings()
    if updates:
        settings = settings.model_copy(update=updates)
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    return settings


@contextmanager
def open_store(database: str | None = None) -> Iterator[MailStore]:
    store = MailStore(load_settings(database).database_path)
    try:
        yield store
    finally:
        store.close()


@contextmanager
def cli_errors() -> Iterator[None]:
    """Render :class:`MailSpineError` as a red one-liner and exit 1."""
    try:
        yield
    except MailSpineError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.code}): {exc.message}")
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_items(
    items: list[Any],
    *,
    as_json: bool = False,
    title: str = "",
    columns: list[str] | None = None,
) -> None:
    """Render a list of records as a Rich table (or JSON)."""
    rows = [_to_dict(i) for i in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    cols = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in cols))
    console.print(table)


def output_record(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single record as key-value pairs (or JSON)."""
    data = _to_dict(obj)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
