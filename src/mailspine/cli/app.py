"""
Root Typer application for the mail-spine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from mailspine import __version__

app = Typer(
    name="mail-spine",
    help="mail-spine — scheduled bulk e-mail dispatch.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mail-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """mail-spine CLI — schedule jobs, import subscribers, run the dispatcher."""


# ── Sub-command registration ─────────────────────────────────────────────

from mailspine.cli.jobs import app as jobs_app  # noqa: E402
from mailspine.cli.run import run  # noqa: E402
from mailspine.cli.serve import serve  # noqa: E402
from mailspine.cli.subscribers import app as subscribers_app  # noqa: E402

app.command("run")(run)
app.command("serve")(serve)
app.add_typer(jobs_app, name="jobs", help="Schedule and inspect jobs.")
app.add_typer(subscribers_app, name="subscribers", help="Import and list subscribers.")


if __name__ == "__main__":
    app()
