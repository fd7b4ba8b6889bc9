"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="jobspine",
    help="jobspine — background job workers on Redis.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobspine import __version__

        typer.echo(f"jobspine {__version__}")
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
    """jobspine CLI — run workers, enqueue jobs, inspect the fleet."""


# ── Sub-command registration ─────────────────────────────────────────────

from jobspine.cli.db import app as db_app  # noqa: E402
from jobspine.cli.jobs import app as jobs_app  # noqa: E402
from jobspine.cli.serve import app as serve_app  # noqa: E402
from jobspine.cli.worker import app as worker_app  # noqa: E402

app.add_typer(worker_app, name="worker", help="Worker pool and fleet stats.")
app.add_typer(jobs_app, name="jobs", help="Enqueue and inspect jobs.")
app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(serve_app, name="serve", help="Start the admin API server.")
