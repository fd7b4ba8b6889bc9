"""
CLI: ``jobspine serve`` — start the admin API server.
"""

from __future__ import annotations

import typer
import uvicorn

from jobspine.cli.utils import console

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the jobspine admin API."""
    console.print(f"[bold green]Starting jobspine API[/bold green] on {host}:{port}")
    uvicorn.run(
        "jobspine.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
