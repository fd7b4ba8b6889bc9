"""
CLI: ``jobspine db`` — database management commands.
"""

from __future__ import annotations

import typer

from jobspine.cli.utils import console, fail, load_settings, open_store
from jobspine.core.errors import PersistenceError

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Overrides JOBSPINE_DATABASE_URL"),  # noqa: UP007
) -> None:
    """Initialise database schema (create the jobs table)."""
    settings = load_settings(database_url=database_url)
    store = open_store(settings)
    try:
        store.create_schema()
    except PersistenceError as e:
        fail(str(e))
    finally:
        store.close()
    console.print(f"[green]Schema ready[/green] at {settings.database_url}")
