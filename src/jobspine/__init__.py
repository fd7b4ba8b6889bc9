"""
jobspine - Redis-backed background job processing engine.

Subpackages:
- jobspine.core: logging, errors, settings and ORM primitives
- jobspine.jobs: job records, broker, registry, retry policy, worker manager
- jobspine.cli: ``jobspine`` command line (typer)
- jobspine.api: admin HTTP router (FastAPI)
"""

__version__ = "0.1.0"
