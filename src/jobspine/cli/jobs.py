"""
CLI: ``jobspine jobs`` — enqueue and inspect job records.
"""

from __future__ import annotations

import json

import typer

from jobspine.cli.utils import (
    console,
    fail,
    load_settings,
    open_broker,
    open_store,
    print_dict,
    print_jobs,
    print_json,
)
from jobspine.core.errors import BrokerError, JobNotFoundError, PersistenceError
from jobspine.jobs.manager import submit_job
from jobspine.jobs.models import JobStatus

app = typer.Typer(no_args_is_help=True)


@app.command("enqueue")
def enqueue(
    job_type: str = typer.Argument(..., help="Handler type of the job"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON object passed to the handler"),
    max_retries: int | None = typer.Option(None, "--max-retries", help="Attempts before terminal failure"),  # noqa: UP007
    queue: str | None = typer.Option(None, "--queue", "-q"),  # noqa: UP007
) -> None:
    """Persist a pending job and push it onto the queue."""
    try:
        data = json.loads(payload)
    except ValueError as e:
        fail(f"--payload is not valid JSON: {e}")
    if not isinstance(data, dict):
        fail("--payload must be a JSON object")

    settings = load_settings(worker_queue_name=queue)
    store = open_store(settings)
    broker = open_broker(settings)
    try:
        job = submit_job(
            store,
            broker,
            settings.worker_queue_name,
            job_type,
            data,
            max_retries=settings.default_max_retries if max_retries is None else max_retries,
        )
    except (PersistenceError, BrokerError) as e:
        fail(str(e))
    finally:
        store.close()
        broker.close()

    console.print(f"[green]Enqueued[/green] {job.id} ({job.type}) on {job.queue}")


@app.command("list")
def list_jobs(
    status: JobStatus | None = typer.Option(None, "--status", "-s", help="Only jobs in this status"),  # noqa: UP007
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Maximum rows"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List the most recently created jobs."""
    settings = load_settings()
    store = open_store(settings)
    try:
        jobs = store.list_recent(limit=limit, status=status)
    except PersistenceError as e:
        fail(str(e))
    finally:
        store.close()

    if json_out:
        print_json({"jobs": [j.to_dict() for j in jobs], "count": len(jobs)})
        return
    print_jobs(jobs, title="Jobs")


@app.command("show")
def show(
    job_id: str = typer.Argument(..., help="Job id"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show one job record."""
    settings = load_settings()
    store = open_store(settings)
    try:
        job = store.get(job_id)
    except JobNotFoundError:
        fail("job not found")
    except PersistenceError as e:
        fail(str(e))
    finally:
        store.close()

    if json_out:
        print_json(job.to_dict())
        return
    print_dict(job.to_dict(), title=f"Job {job.id}")
