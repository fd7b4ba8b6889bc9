"""
CLI layer for jobspine.

A Typer application whose sub-commands wire settings to the engine
components and render results with rich. Engine logic lives in
``jobspine.jobs``.

Entry point::

    jobspine --help
"""

from jobspine.cli.app import app

__all__ = ["app"]
