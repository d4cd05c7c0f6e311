"""
CLI: ``mail-spine run`` — scheduler and worker pool in the foreground.
"""

from __future__ import annotations

import signal
import threading

import typer

from mailspine.cli.utils import console, load_settings
from mailspine.service import MailService


def run(
    db: str | None = typer.Option(None, "--db", "-d", help="SQLite database path"),  # noqa: UP007
    workers: int | None = typer.Option(None, "--workers", "-w", help="Delivery worker threads"),  # noqa: UP007
    interval: float | None = typer.Option(None, "--interval", help="Seconds between scheduler ticks"),  # noqa: UP007
    once: bool = typer.Option(False, "--once", help="Run one tick, wait for its jobs, then exit"),
) -> None:
    """Dispatch due jobs until SIGINT/SIGTERM.

    Example::

        mail-spine run --workers 8 --interval 5
        mail-spine run --once          # cron-friendly single pass
    """
    settings = load_settings(db, worker_count=workers, scheduler_interval=interval)
    service = MailService.from_settings(settings)

    if once:
        service.start(scheduler=False)
        try:
            claimed = service.scheduler.tick()
            service.scheduler.drain()
        finally:
            service.stop()
        console.print(f"[green]Dispatched {len(claimed)} job(s)[/green]")
        return

    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[bold green]mail-spine running[/bold green] "
        f"(workers={settings.worker_count}, interval={settings.scheduler_interval}s, "
        f"db={settings.database_path})"
    )
    service.start()
    try:
        stop_event.wait()
    finally:
        console.print("[yellow]Shutting down, draining in-flight jobs...[/yellow]")
        service.stop(drain=True)
