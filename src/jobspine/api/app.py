"""
FastAPI application factory.

``create_app()`` wires the routers and lifespan events into a single
``FastAPI`` instance.

Tags:
    jobspine, api, app-factory, FastAPI
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jobspine import __version__
from jobspine.api.deps import close_components, get_settings
from jobspine.api.routers import workers_router
from jobspine.core.logging import get_logger

log = get_logger("jobspine.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup / shutdown hooks."""
    settings = get_settings()
    log.info("api_starting", version=app.version, queue=settings.worker_queue_name)
    yield
    close_components()
    log.info("api_stopped")


def create_app() -> FastAPI:
    """Build the admin API."""
    app = FastAPI(
        title="jobspine",
        version=__version__,
        description="Worker fleet statistics and job inspection.",
        lifespan=lifespan,
    )
    app.include_router(workers_router)
    return app
