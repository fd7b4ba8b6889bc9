"""SQLAlchemy primitives: declarative base, engine/session factories, tables."""

from jobspine.core.orm.base import JobSpineBase
from jobspine.core.orm.session import (
    JobSpineSession,
    create_jobspine_engine,
    jobspine_session_factory,
)
from jobspine.core.orm.tables import JobTable

__all__ = [
    "JobSpineBase",
    "JobSpineSession",
    "JobTable",
    "create_jobspine_engine",
    "jobspine_session_factory",
]
