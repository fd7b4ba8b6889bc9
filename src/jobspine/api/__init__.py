"""
jobspine admin HTTP API.

Usage::

    uvicorn jobspine.api:create_app --factory
"""

from jobspine.api.app import create_app

__all__ = ["create_app"]
