"""
CLI: ``mail-spine jobs`` — schedule and inspect jobs.
"""

from __future__ import annotations

import typer

from mailspine.cli.utils import cli_errors, console, open_store, output_items, output_record
from mailspine.ops import jobs as job_ops

app = typer.Typer(no_args_is_help=True)

_LIST_COLUMNS = ["id", "subject", "status", "scheduled_at", "completed_at", "dropped_count"]


@app.command("create")
def create(
    subject: str = typer.Option(..., "--subject", "-s", help="Message subject"),
    body: str = typer.Option(..., "--body", "-b", help="Message body"),
    at: str | None = typer.Option(None, "--at", help="RFC 3339 time or unix seconds (default: now)"),  # noqa: UP007
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Schedule a bulk message.

    Example::

        mail-spine jobs create -s "Launch" -b "We are live" --at 2026-01-01T09:00:00Z
    """
    with cli_errors(), open_store(db) as store:
        job = job_ops.schedule_job(store, subject, body, at)
        if as_json:
            output_record(job, as_json=True)
            return
        console.print(f"[green]Scheduled[/green] {job.id} for {job.scheduled_at.isoformat()}")


@app.command("list")
def list_jobs(
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List jobs, newest first."""
    with cli_errors(), open_store(db) as store:
        output_items(job_ops.list_jobs(store), as_json=as_json, title="Jobs", columns=_LIST_COLUMNS)


@app.command("show")
def show(
    job_id: str = typer.Argument(..., help="Job ID"),
    sends: bool = typer.Option(False, "--sends", help="Include per-recipient Send rows"),
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show one job with its Send status counts."""
    with cli_errors(), open_store(db) as store:
        detail = job_ops.get_job_detail(store, job_id, include_sends=sends)
        if as_json:
            output_record(detail, as_json=True)
            return
        data = detail.to_dict()
        send_rows = data.pop("sends", None)
        output_record(data, title=f"Job {job_id}")
        if send_rows:
            output_items(
                send_rows,
                title="Sends",
                columns=["email", "status", "attempts", "last_error", "sent_at"],
            )
