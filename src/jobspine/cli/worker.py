"""
CLI: ``jobspine worker`` — run the worker pool and inspect the fleet.
"""

from __future__ import annotations

import signal
import threading

import typer

from jobspine.cli.utils import (
    console,
    load_registry,
    load_settings,
    open_broker,
    open_liveness,
    open_store,
    print_dict,
    print_json,
    setup_logging,
)
from jobspine.core.errors import ConfigError, JobSpineError
from jobspine.core.settings import WorkerSettings
from jobspine.jobs.manager import WorkerManager
from jobspine.jobs.registry import HandlerRegistry
from jobspine.jobs.stats import get_worker_stats

app = typer.Typer(no_args_is_help=True)


def build_manager(settings: WorkerSettings, registry: HandlerRegistry | None) -> WorkerManager:
    return WorkerManager.from_settings(settings, registry=registry)


def install_signal_handlers(manager: WorkerManager) -> None:
    """Run ``manager.shutdown()`` on SIGINT / SIGTERM.

    Shutdown joins the worker threads, so it runs on its own thread rather
    than inside the handler of the thread blocked in ``start()``.
    """

    def _handle(signum: int, _frame: object) -> None:
        console.print(f"\n[yellow]Received {signal.Signals(signum).name}, shutting down workers...[/yellow]")
        threading.Thread(target=manager.shutdown, name="jobspine-shutdown").start()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


@app.command("start")
def start(
    concurrency: int | None = typer.Option(None, "--concurrency", "-c", help="Worker loops in this process"),  # noqa: UP007
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue to drain"),  # noqa: UP007
    handlers: str | None = typer.Option(  # noqa: UP007
        None, "--handlers", help="HandlerRegistry to serve, as 'module:attribute'"
    ),
) -> None:
    """Start the worker pool and block until SIGINT/SIGTERM.

    Example::

        jobspine worker start --concurrency 8 --handlers myapp.jobs:registry
    """
    settings = load_settings(worker_concurrency=concurrency, worker_queue_name=queue)
    setup_logging(settings, service="jobspine-worker")
    registry = load_registry(handlers) if handlers else None

    try:
        manager = build_manager(settings, registry)
    except JobSpineError as exc:
        console.print(f"[red]Worker error: {exc}[/red]")
        raise typer.Exit(code=1)

    install_signal_handlers(manager)
    console.print(
        f"[bold green]Worker started[/bold green] "
        f"(id={manager.worker_id}, concurrency={settings.worker_concurrency}, "
        f"queue={settings.worker_queue_name})"
    )
    try:
        manager.start()
    except ConfigError as exc:
        # A signal may have shut the manager down before start() ran
        if not manager.closed:
            console.print(f"[red]Worker error: {exc}[/red]")
            raise typer.Exit(code=1)
    manager.shutdown()
    console.print("[yellow]Worker stopped[/yellow]")


@app.command("stats")
def stats(
    queue: str | None = typer.Option(None, "--queue", "-q", help="Queue to measure"),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show queue length, live workers and job counts."""
    settings = load_settings(worker_queue_name=queue)
    broker = open_broker(settings)
    liveness = open_liveness(settings)
    store = open_store(settings)
    try:
        snapshot = get_worker_stats(
            broker,
            liveness,
            store,
            settings.worker_queue_name,
            threshold_seconds=settings.liveness_threshold_seconds,
        )
    finally:
        broker.close()
        liveness.close()
        store.close()

    data = snapshot.to_dict()
    if json_out:
        print_json(data)
        return

    workers = data.pop("workers")
    print_dict(data, title=f"Workers ({settings.worker_queue_name})")
    for w in workers:
        style = "green" if w["status"] == "running" else "yellow"
        console.print(
            f"  [bold]{w['id']}[/bold]  [{style}]{w['status']}[/{style}]  "
            f"last_seen={w['last_seen']}  jobs_handled={w['jobs_handled']}"
        )
