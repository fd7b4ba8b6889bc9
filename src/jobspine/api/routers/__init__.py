"""API routers."""

from jobspine.api.routers.workers import router as workers_router

__all__ = ["workers_router"]
