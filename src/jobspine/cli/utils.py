"""
CLI utility helpers — output formatting and component wiring.
"""

from __future__ import annotations

import importlib
import json
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from jobspine.core.logging import configure_logging
from jobspine.core.settings import WorkerSettings, get_settings
from jobspine.jobs.broker import RedisBroker, create_redis_client
from jobspine.jobs.heartbeat import RedisLivenessStore
from jobspine.jobs.models import Job
from jobspine.jobs.registry import HandlerRegistry
from jobspine.jobs.store import SQLAlchemyJobStore

console = Console()
err_console = Console(stderr=True)


# ── Settings / components ────────────────────────────────────────────────


def load_settings(**overrides: Any) -> WorkerSettings:
    """Process settings with non-``None`` CLI overrides applied."""
    settings = get_settings()
    updates = {k: v for k, v in overrides.items() if v is not None}
    if updates:
        try:
            settings = WorkerSettings(**{**settings.model_dump(), **updates})
        except ValidationError as e:
            fail(str(e))
    return settings


def setup_logging(settings: WorkerSettings, service: str = "jobspine") -> None:
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        service=service,
    )


def open_store(settings: WorkerSettings) -> SQLAlchemyJobStore:
    return SQLAlchemyJobStore.from_url(settings.database_url, echo=settings.database_echo)


def open_broker(settings: WorkerSettings) -> RedisBroker:
    return RedisBroker.from_url(settings.redis_url)


def open_liveness(settings: WorkerSettings) -> RedisLivenessStore:
    return RedisLivenessStore(create_redis_client(settings.redis_url))


def load_registry(path: str) -> HandlerRegistry:
    """Import a :class:`HandlerRegistry` from ``"package.module:attribute"``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"expected 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name!r}: {e}") from e
    registry = getattr(module, attr, None)
    if not isinstance(registry, HandlerRegistry):
        raise typer.BadParameter(f"{path!r} is not a HandlerRegistry")
    return registry


# ── Output helpers ───────────────────────────────────────────────────────


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def print_jobs(jobs: list[Job], *, title: str = "") -> None:
    if not jobs:
        console.print("[dim]No jobs.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in ("id", "type", "status", "attempts", "max_retries", "created_at", "error"):
        table.add_column(col, overflow="fold")
    for job in jobs:
        table.add_row(
            job.id,
            job.type,
            job.status.value,
            str(job.attempts),
            str(job.max_retries),
            job.created_at.isoformat(timespec="seconds"),
            job.error or "",
        )
    console.print(table)
